"""
DCLense - Routes Auth
Login / Logout / Session / User CRUD.
Only emails present in `users` may sign in (no self sign-up).
"""

from fastapi import APIRouter, HTTPException, Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from datetime import datetime, timezone, timedelta

from models.auth import UserLogin, UserCreate, UserUpdate, RoleCheck
from config import get_db, hash_password, generate_token, new_id, now_iso, SESSION_DAYS
from services.audit_logger import log_system_action
from services.permissions import get_preset_permissions, require_permission

router = APIRouter(prefix="/auth", tags=["Auth"])
security = HTTPBearer(auto_error=False)

PUBLIC_USER_PROJECTION = {"_id": 0, "password": 0}


# ==================== HELPERS ====================

async def get_user_from_token(db, token: str):
    """User bound to a live session token, or None"""
    if not token:
        return None
    session = await db.sessions.find_one({
        "token": token,
        "expires_at": {"$gt": now_iso()}
    })
    if not session:
        return None

    user = await db.users.find_one({"id": session["user_id"]}, PUBLIC_USER_PROJECTION)
    if not user or not user.get("is_active", True):
        return None

    user["permissions"] = get_preset_permissions(user.get("role", "user"))
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db),
):
    """Logged-in user from the bearer token."""
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = await get_user_from_token(db, credentials.credentials)
    if not user:
        raise HTTPException(status_code=401, detail="Session expired")
    return user


def _client_info(request: Request):
    return (
        request.client.host if request.client else None,
        request.headers.get("user-agent"),
    )


# ==================== LOGIN / LOGOUT ====================

@router.post("/check-role")
async def check_role(data: RoleCheck, db=Depends(get_db)):
    """Is this email allowed to sign in?"""
    user = await db.users.find_one(
        {"email": data.email.lower().strip(), "is_active": {"$ne": False}},
        {"_id": 0, "id": 1, "email": 1, "role": 1}
    )
    if not user:
        raise HTTPException(
            status_code=403,
            detail="This email is not authorized to sign in. Please contact your administrator."
        )
    return {"authorized": True, "role": user.get("role", "user")}


@router.post("/login")
async def login(data: UserLogin, request: Request, db=Depends(get_db)):
    user = await db.users.find_one({"email": data.email.lower().strip()}, {"_id": 0})

    if not user:
        raise HTTPException(
            status_code=401,
            detail="This email is not authorized to sign in. Please contact your administrator."
        )

    if user.get("password") != hash_password(data.password):
        raise HTTPException(status_code=401, detail="Incorrect email or password")

    if not user.get("is_active", True):
        raise HTTPException(status_code=403, detail="Account disabled")

    token = generate_token()
    expires_at = (datetime.now(timezone.utc) + timedelta(days=SESSION_DAYS)).isoformat()

    await db.sessions.insert_one({
        "token": token,
        "user_id": user["id"],
        "created_at": now_iso(),
        "expires_at": expires_at
    })

    ip_address, user_agent = _client_info(request)
    await log_system_action(db, user["id"], "login", {"email": user["email"]}, ip_address, user_agent)

    return {
        "token": token,
        "user": {
            "id": user["id"],
            "email": user["email"],
            "first_name": user.get("first_name", ""),
            "last_name": user.get("last_name", ""),
            "role": user.get("role", "user"),
            "permissions": get_preset_permissions(user.get("role", "user")),
        }
    }


@router.post("/logout")
async def logout(
    request: Request,
    user: dict = Depends(get_current_user),
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db=Depends(get_db),
):
    if credentials:
        await db.sessions.delete_one({"token": credentials.credentials})
    ip_address, user_agent = _client_info(request)
    await log_system_action(db, user["id"], "logout", {}, ip_address, user_agent)
    return {"success": True}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    return user


# ==================== USER CRUD (admin) ====================

@router.get("/users")
async def list_users(
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    """Every user, for assignment dropdowns"""
    users = await db.users.find({}, PUBLIC_USER_PROJECTION).sort("first_name", 1).to_list(500)
    return {"users": users}


@router.post("/users")
async def create_user(
    data: UserCreate,
    user: dict = Depends(require_permission("users.manage")),
    db=Depends(get_db),
):
    email = data.email.lower().strip()
    existing = await db.users.find_one({"email": email})
    if existing:
        raise HTTPException(status_code=409, detail="This email already exists")

    user_id = new_id()
    new_user = {
        "_id": user_id,
        "id": user_id,
        "email": email,
        "password": hash_password(data.password),
        "first_name": data.first_name,
        "last_name": data.last_name or "",
        "role": data.role,
        "is_active": True,
        "created_at": now_iso(),
        "created_by": user.get("id")
    }

    await db.users.insert_one(new_user)
    await log_system_action(db, user["id"], "create_user", {"user_id": user_id, "email": email, "role": data.role})

    new_user.pop("password", None)
    new_user.pop("_id", None)
    return {"success": True, "user": new_user}


@router.put("/users/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    user: dict = Depends(require_permission("users.manage")),
    db=Depends(get_db),
):
    target = await db.users.find_one({"id": user_id})
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    update_data = data.model_dump(exclude_none=True)
    if "password" in update_data:
        update_data["password"] = hash_password(update_data["password"])
    if user_id == user.get("id") and update_data.get("role", "admin") != "admin":
        raise HTTPException(status_code=400, detail="You cannot remove your own admin role")

    update_data["updated_at"] = now_iso()
    await db.users.update_one({"id": user_id}, {"$set": update_data})

    if update_data.get("is_active") is False:
        await db.sessions.delete_many({"user_id": user_id})

    await log_system_action(
        db, user["id"], "update_user",
        {"user_id": user_id, "fields": [k for k in update_data if k not in ("updated_at", "password")]}
    )

    updated = await db.users.find_one({"id": user_id}, PUBLIC_USER_PROJECTION)
    return {"success": True, "user": updated}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    user: dict = Depends(require_permission("users.manage")),
    db=Depends(get_db),
):
    target = await db.users.find_one({"id": user_id})
    if not target:
        raise HTTPException(status_code=404, detail="User not found")

    if user_id == user.get("id"):
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    await db.users.delete_one({"id": user_id})
    await db.sessions.delete_many({"user_id": user_id})
    await log_system_action(db, user["id"], "delete_user", {"user_id": user_id, "email": target.get("email")})

    return {"success": True}
