"""
DCLense - Audit trail

Three collections:
    audit_logs  : every mutation of companies / representatives (old + new values)
    system_logs : login, logout, user management, cron runs
    export_logs : every CSV export

Writers never fail the calling request: errors are logged and swallowed.
"""

import logging
from typing import Optional

from config import new_id, now_iso

logger = logging.getLogger("audit")

USER_PROJECTION = {"_id": 0, "id": 1, "first_name": 1, "last_name": 1, "email": 1}


def _clean(values: Optional[dict]) -> Optional[dict]:
    if values is None:
        return None
    return {k: v for k, v in values.items() if k != "_id"}


async def log_audit(
    db,
    user_id: str,
    action: str,
    table_name: str,
    record_id: str = None,
    old_values: dict = None,
    new_values: dict = None,
):
    """
    Record one mutation.

    Actions: create, update, delete, bulk_delete, bulk_assign, csv_import, csv_modify, csv_export
    Tables: companies, representatives, candidates, users
    """
    entry = {
        "id": new_id(),
        "user_id": user_id or "system",
        "action": action,
        "table_name": table_name,
        "record_id": record_id,
        "old_values": _clean(old_values),
        "new_values": _clean(new_values),
        "created_at": now_iso(),
    }
    try:
        await db.audit_logs.insert_one(entry)
    except Exception as e:
        logger.error(f"Audit write failed ({action} {table_name} {record_id}): {str(e)}")
        return None
    entry.pop("_id", None)
    return entry


async def log_system_action(
    db,
    user_id: str,
    action: str,
    metadata: dict = None,
    ip_address: str = None,
    user_agent: str = None,
):
    entry = {
        "id": new_id(),
        "user_id": user_id or "system",
        "action": action,
        "metadata": metadata or {},
        "ip_address": ip_address,
        "user_agent": user_agent,
        "created_at": now_iso(),
    }
    try:
        await db.system_logs.insert_one(entry)
    except Exception as e:
        logger.error(f"System log write failed ({action}): {str(e)}")
        return None
    entry.pop("_id", None)
    return entry


async def log_export(
    db,
    user_id: str,
    export_type: str,
    record_count: int,
    file_name: str = None,
    purpose: str = None,
    filters: dict = None,
):
    entry = {
        "id": new_id(),
        "user_id": user_id,
        "export_type": export_type,
        "record_count": record_count,
        "file_name": file_name,
        "purpose": purpose,
        "filters_applied": filters or {},
        "created_at": now_iso(),
    }
    try:
        await db.export_logs.insert_one(entry)
    except Exception as e:
        logger.error(f"Export log write failed ({export_type}): {str(e)}")
        return None
    entry.pop("_id", None)
    return entry


# ==================== READERS ====================

async def _paginated(db, collection: str, query: dict, page: int, limit: int) -> dict:
    page = max(int(page or 1), 1)
    skip = (page - 1) * limit

    logs = await db[collection].find(query, {"_id": 0}) \
        .sort("created_at", -1) \
        .skip(skip) \
        .limit(limit) \
        .to_list(limit)

    user_ids = list({log["user_id"] for log in logs if log.get("user_id")})
    users = {}
    if user_ids:
        found = await db.users.find({"id": {"$in": user_ids}}, USER_PROJECTION).to_list(None)
        users = {u["id"]: u for u in found}
    for log in logs:
        user = users.get(log.get("user_id"))
        log["user"] = {k: user.get(k) for k in ("first_name", "last_name", "email")} if user else None

    total = await db[collection].count_documents(query)
    return {"logs": logs, "total": total, "page": page, "limit": limit}


def _base_query(user_id: str = None, date_from: str = None, date_to: str = None) -> dict:
    query = {}
    if user_id:
        query["user_id"] = user_id
    created = {}
    if date_from:
        created["$gte"] = date_from
    if date_to:
        created["$lte"] = date_to
    if created:
        query["created_at"] = created
    return query


async def get_audit_logs(db, page: int = 1, limit: int = 50, user_id: str = None, action: str = None,
                         table_name: str = None, date_from: str = None, date_to: str = None) -> dict:
    query = _base_query(user_id, date_from, date_to)
    if action:
        query["action"] = action
    if table_name:
        query["table_name"] = table_name
    return await _paginated(db, "audit_logs", query, page, limit)


async def get_system_logs(db, page: int = 1, limit: int = 50, user_id: str = None, action: str = None,
                          date_from: str = None, date_to: str = None) -> dict:
    query = _base_query(user_id, date_from, date_to)
    if action:
        query["action"] = action
    return await _paginated(db, "system_logs", query, page, limit)


async def get_export_logs(db, page: int = 1, limit: int = 50, user_id: str = None, export_type: str = None,
                          date_from: str = None, date_to: str = None) -> dict:
    query = _base_query(user_id, date_from, date_to)
    if export_type:
        query["export_type"] = export_type
    return await _paginated(db, "export_logs", query, page, limit)
