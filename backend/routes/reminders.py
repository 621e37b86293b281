"""
DCLense - Routes Reminders / Notifications / Cron
"""

import hmac
from fastapi import APIRouter, Depends, HTTPException, Header, Query
from typing import Optional

from config import get_db, CRON_SECRET
from routes.auth import get_current_user
from services.reminders import (
    get_user_reminders,
    get_notifications,
    unread_notification_count,
    set_notification_read,
    mark_all_notifications_read,
    delete_notification,
    run_daily_reminders,
)
from services.audit_logger import log_system_action

router = APIRouter(tags=["Reminders"])


# ==================== REMINDERS ====================

@router.get("/reminders")
async def list_my_reminders(user: dict = Depends(get_current_user), db=Depends(get_db)):
    return await get_user_reminders(db, user["id"])


# ==================== NOTIFICATIONS ====================

@router.get("/notifications")
async def list_notifications(user: dict = Depends(get_current_user), db=Depends(get_db)):
    notifications = await get_notifications(db, user["id"])
    return {"notifications": notifications, "count": len(notifications)}


@router.get("/notifications/unread-count")
async def get_unread_count(user: dict = Depends(get_current_user), db=Depends(get_db)):
    return {"count": await unread_notification_count(db, user["id"])}


@router.post("/notifications/mark-all-read")
async def mark_all_read(user: dict = Depends(get_current_user), db=Depends(get_db)):
    return {"success": True, "updated": await mark_all_notifications_read(db, user["id"])}


@router.put("/notifications/{notification_id}/read")
async def mark_read(notification_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    if not await set_notification_read(db, user["id"], notification_id, True):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.put("/notifications/{notification_id}/unread")
async def mark_unread(notification_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    if not await set_notification_read(db, user["id"], notification_id, False):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.delete("/notifications/{notification_id}")
async def remove_notification(notification_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    if not await delete_notification(db, user["id"], notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


# ==================== CRON ====================

def _check_cron_secret(authorization: Optional[str], secret: Optional[str]):
    if not CRON_SECRET:
        raise HTTPException(status_code=403, detail="CRON_SECRET not configured")
    provided = secret or ""
    if authorization and authorization.startswith("Bearer "):
        provided = authorization[len("Bearer "):]
    if not hmac.compare_digest(provided, CRON_SECRET):
        raise HTTPException(status_code=401, detail="Invalid cron secret")


@router.get("/cron/daily-reminders")
async def trigger_daily_reminders(
    authorization: Optional[str] = Header(None),
    secret: Optional[str] = Query(None),
    date: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today (Europe/Belgrade)"),
    db=Depends(get_db),
):
    """Manual / external trigger of the 08:00 job"""
    _check_cron_secret(authorization, secret)

    from email_service import email_service
    result = await run_daily_reminders(db, email_service, day=date)
    await log_system_action(db, "system", "cron_daily_reminders", {
        "date": result["date"],
        "representatives": result["representatives"],
        "sent": sum(1 for r in result["results"] if r["success"]),
    })
    return result
