"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Reminders & notifications                                         ║
║                                                                              ║
║  - user reminders: assigned representatives with a reminder_date,            ║
║    assigned companies with a last_activity_date                              ║
║  - notifications: per-user inbox (list, unread count, read/unread, delete)   ║
║  - daily job: representatives whose reminder_date is today (Belgrade time),  ║
║    grouped by assignee, one digest email + one notification each             ║
║                                                                              ║
║  The daily job reports per-user success / failure and never aborts midway.   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List

import pytz

from config import REMINDER_TIMEZONE, new_id, now_iso
from services.queries import enrich_rows
from models.entity import EntityType

logger = logging.getLogger("reminders")


def today_in_timezone(tz_name: str = None, now: datetime = None) -> str:
    """YYYY-MM-DD in the reminder time zone"""
    tz = pytz.timezone(tz_name or REMINDER_TIMEZONE)
    current = now.astimezone(tz) if now else datetime.now(tz)
    return current.strftime("%Y-%m-%d")


def _next_day(day: str) -> str:
    return (datetime.strptime(day, "%Y-%m-%d") + timedelta(days=1)).strftime("%Y-%m-%d")


# ==================== USER REMINDERS ====================

async def get_user_reminders(db, user_id: str) -> dict:
    representatives = await db.representatives.find(
        {"assigned_to": user_id, "reminder_date": {"$nin": [None, ""]}, "is_deleted": {"$ne": True}},
        {"_id": 0}
    ).sort("reminder_date", 1).to_list(None)
    representatives = await enrich_rows(db, EntityType.REPRESENTATIVES, representatives)

    companies = await db.companies.find(
        {"assigned_to": user_id, "last_activity_date": {"$nin": [None, ""]}, "is_deleted": {"$ne": True}},
        {"_id": 0}
    ).sort("last_activity_date", 1).to_list(None)

    return {"representatives": representatives, "companies": companies}


# ==================== NOTIFICATIONS ====================

async def create_notification(db, user_id: str, title: str, message: str,
                              notification_type: str = "reminder", record_id: str = None) -> dict:
    notification = {
        "id": new_id(),
        "user_id": user_id,
        "type": notification_type,
        "title": title,
        "message": message,
        "record_id": record_id,
        "is_read": False,
        "created_at": now_iso(),
        "updated_at": now_iso(),
    }
    await db.notifications.insert_one(notification)
    notification.pop("_id", None)
    return notification


async def get_notifications(db, user_id: str, limit: int = 100) -> List[dict]:
    return await db.notifications.find({"user_id": user_id}, {"_id": 0}) \
        .sort("created_at", -1) \
        .to_list(limit)


async def unread_notification_count(db, user_id: str) -> int:
    return await db.notifications.count_documents({"user_id": user_id, "is_read": False})


async def set_notification_read(db, user_id: str, notification_id: str, is_read: bool) -> bool:
    result = await db.notifications.update_one(
        {"id": notification_id, "user_id": user_id},
        {"$set": {"is_read": is_read, "updated_at": now_iso()}}
    )
    return result.matched_count > 0


async def mark_all_notifications_read(db, user_id: str) -> int:
    result = await db.notifications.update_many(
        {"user_id": user_id, "is_read": False},
        {"$set": {"is_read": True, "updated_at": now_iso()}}
    )
    return result.modified_count


async def delete_notification(db, user_id: str, notification_id: str) -> bool:
    result = await db.notifications.delete_one({"id": notification_id, "user_id": user_id})
    return result.deleted_count > 0


# ==================== DAILY JOB ====================

def group_by_assignee(representatives: List[dict], users: Dict[str, dict]) -> Dict[str, dict]:
    """{user_id: {"user": user, "representatives": [...]}}; unknown assignees are skipped"""
    groups: Dict[str, dict] = {}
    for rep in representatives:
        user = users.get(rep.get("assigned_to"))
        if not user:
            continue
        groups.setdefault(user["id"], {"user": user, "representatives": []})
        groups[user["id"]]["representatives"].append(rep)
    return groups


async def find_todays_reminders(db, day: str) -> List[dict]:
    representatives = await db.representatives.find(
        {
            "reminder_date": {"$gte": day, "$lt": _next_day(day)},
            "assigned_to": {"$nin": [None, ""]},
            "is_deleted": {"$ne": True},
        },
        {"_id": 0}
    ).sort("reminder_date", 1).to_list(None)
    return await enrich_rows(db, EntityType.REPRESENTATIVES, representatives)


async def run_daily_reminders(db, email_service, day: str = None) -> dict:
    """
    Send today's digest to every assignee.
    Returns {"success", "date", "representatives", "results": [{"user", "success", "error"?}]}
    """
    day = day or today_in_timezone()
    logger.info(f"[DAILY_REMINDERS] checking reminders for {day}")

    representatives = await find_todays_reminders(db, day)
    if not representatives:
        logger.info("[DAILY_REMINDERS] no reminders today")
        return {"success": True, "date": day, "representatives": 0, "results": [],
                "message": "No reminders found for today"}

    user_ids = list({r["assigned_to"] for r in representatives})
    users = await db.users.find(
        {"id": {"$in": user_ids}}, {"_id": 0, "id": 1, "email": 1, "first_name": 1, "last_name": 1}
    ).to_list(None)
    groups = group_by_assignee(representatives, {u["id"]: u for u in users})

    results = []
    for group in groups.values():
        user, reps = group["user"], group["representatives"]
        try:
            for rep in reps:
                await create_notification(
                    db, user["id"],
                    title="Reminder",
                    message=f"Follow up with {rep.get('full_name') or rep.get('first_name')}",
                    record_id=rep["id"],
                )
            sent = email_service.send_reminder_digest(user, reps)
            if sent:
                results.append({"user": user["email"], "success": True, "count": len(reps)})
            else:
                results.append({"user": user["email"], "success": False, "error": "email not sent"})
        except Exception as e:
            logger.error(f"[DAILY_REMINDERS] failed for {user.get('email')}: {str(e)}")
            results.append({"user": user.get("email"), "success": False, "error": str(e)})

    logger.info(
        f"[DAILY_REMINDERS] {len(representatives)} reminders, "
        f"{sum(1 for r in results if r['success'])}/{len(results)} emails sent"
    )
    return {
        "success": True,
        "date": day,
        "representatives": len(representatives),
        "results": results,
        "message": f"Processed reminders for {len(representatives)} representatives",
    }
