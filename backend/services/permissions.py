"""
DCLense - Permission System
Permission keys + role presets + FastAPI dependencies.
Two roles: admin (everything) and user (everything but users and logs).
"""

import logging
from typing import Dict
from fastapi import Depends, HTTPException

logger = logging.getLogger("permissions")

# ════════════════════════════════════════════════════════════════════════
# ALL PERMISSION KEYS
# ════════════════════════════════════════════════════════════════════════

ALL_PERMISSION_KEYS = [
    "dashboard.view",

    "companies.view",
    "companies.edit",
    "companies.delete",

    "representatives.view",
    "representatives.edit",
    "representatives.delete",

    "candidates.manage",

    "csv.import",
    "csv.export",

    "stats.view",

    "logs.view",
    "users.manage",
]

ADMIN_ONLY_KEYS = ("logs.view", "users.manage")

# ════════════════════════════════════════════════════════════════════════
# ROLE PRESETS
# ════════════════════════════════════════════════════════════════════════

ROLE_PRESETS: Dict[str, Dict[str, bool]] = {
    "admin": {k: True for k in ALL_PERMISSION_KEYS},
    "user": {k: k not in ADMIN_ONLY_KEYS for k in ALL_PERMISSION_KEYS},
}

VALID_ROLES = list(ROLE_PRESETS.keys())


def get_preset_permissions(role: str) -> Dict[str, bool]:
    """Returns the permissions of a role (unknown role -> user)"""
    return dict(ROLE_PRESETS.get(role, ROLE_PRESETS["user"]))


def user_has_permission(user: dict, key: str) -> bool:
    if user.get("role") == "admin":
        return True
    perms = user.get("permissions") or get_preset_permissions(user.get("role", "user"))
    return perms.get(key, False) is True


# ════════════════════════════════════════════════════════════════════════
# FASTAPI DEPENDENCIES
# ════════════════════════════════════════════════════════════════════════

def require_permission(permission_key: str):
    """
    FastAPI dependency factory.
    Usage: user: dict = Depends(require_permission("logs.view"))
    """
    from routes.auth import get_current_user

    async def _check(user: dict = Depends(get_current_user)):
        if not user_has_permission(user, permission_key):
            logger.warning(
                f"[PERMISSION_DENIED] user={user.get('email')} "
                f"key={permission_key} role={user.get('role')}"
            )
            raise HTTPException(
                status_code=403,
                detail=f"Permission required: {permission_key}"
            )
        return user

    return _check
