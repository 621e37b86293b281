"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Record writes (companies + representatives)                       ║
║                                                                              ║
║  Every write goes through here so that:                                      ║
║  - _id == id (change stream documentKey maps back to the record)             ║
║  - created_by / updated_by / timestamps are always set                       ║
║  - every mutation lands in audit_logs with old and new values                ║
║  - delete is a soft delete (is_deleted = True), never a hard delete          ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import re
import logging
from typing import List, Optional

from config import new_id, now_iso
from models.entity import EntityType
from models.representative import build_full_name
from services.audit_logger import log_audit

logger = logging.getLogger("records")


class DuplicateCompanyError(Exception):
    """company_name already used by a non-deleted company"""


async def find_company_by_name(db, company_name: str, exclude_id: str = None) -> Optional[dict]:
    """Case-insensitive exact match among non-deleted companies"""
    query = {
        "company_name": {"$regex": f"^{re.escape(company_name.strip())}$", "$options": "i"},
        "is_deleted": {"$ne": True},
    }
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    return await db.companies.find_one(query, {"_id": 0})


async def get_record(db, entity_type: EntityType, record_id: str) -> Optional[dict]:
    return await db[EntityType(entity_type).value].find_one(
        {"id": record_id, "is_deleted": {"$ne": True}}, {"_id": 0}
    )


def _with_full_name(entity_type: EntityType, data: dict, current: dict = None) -> dict:
    if entity_type != EntityType.REPRESENTATIVES:
        return data
    if "first_name" in data or "last_name" in data:
        current = current or {}
        first = data.get("first_name", current.get("first_name"))
        last = data.get("last_name", current.get("last_name"))
        data["full_name"] = build_full_name(first, last)
    return data


async def create_record(db, entity_type: EntityType, data: dict, user_id: str, action: str = "create") -> dict:
    entity_type = EntityType(entity_type)

    if entity_type == EntityType.COMPANIES:
        if await find_company_by_name(db, data["company_name"]):
            raise DuplicateCompanyError(data["company_name"])

    record_id = new_id()
    now = now_iso()
    record = {
        "_id": record_id,
        "id": record_id,
        **_with_full_name(entity_type, dict(data)),
        "is_deleted": False,
        "created_by": user_id,
        "updated_by": user_id,
        "created_at": now,
        "updated_at": now,
    }
    record.setdefault("mark_unread", True)

    await db[entity_type.value].insert_one(record)
    record.pop("_id", None)

    await log_audit(db, user_id, action, entity_type.value, record_id, None, record)
    return record


async def update_record(db, entity_type: EntityType, record_id: str, data: dict, user_id: str,
                        action: str = "update") -> Optional[dict]:
    """Partial update. Returns None if the record does not exist (or is deleted)."""
    entity_type = EntityType(entity_type)
    old = await get_record(db, entity_type, record_id)
    if not old:
        return None

    if entity_type == EntityType.COMPANIES and data.get("company_name"):
        if await find_company_by_name(db, data["company_name"], exclude_id=record_id):
            raise DuplicateCompanyError(data["company_name"])

    changes = _with_full_name(entity_type, dict(data), old)
    changes["updated_by"] = user_id
    changes["updated_at"] = now_iso()

    await db[entity_type.value].update_one({"id": record_id}, {"$set": changes})
    new = {**old, **changes}

    await log_audit(db, user_id, action, entity_type.value, record_id, old, new)
    return new


async def soft_delete(db, entity_type: EntityType, ids: List[str], user_id: str, action: str = "delete") -> int:
    entity_type = EntityType(entity_type)
    collection = db[entity_type.value]

    old_rows = await collection.find({"id": {"$in": ids}, "is_deleted": {"$ne": True}}, {"_id": 0}).to_list(None)
    if not old_rows:
        return 0

    now = now_iso()
    await collection.update_many(
        {"id": {"$in": [r["id"] for r in old_rows]}},
        {"$set": {"is_deleted": True, "deleted_at": now, "updated_by": user_id, "updated_at": now}}
    )

    for row in old_rows:
        await log_audit(db, user_id, action, entity_type.value, row["id"], row, None)

    logger.info(f"[{entity_type.value}] {len(old_rows)} soft-deleted by {user_id}")
    return len(old_rows)


async def assign(db, entity_type: EntityType, ids: List[str], assignee_id: Optional[str], user_id: str,
                 action: str = "bulk_assign") -> List[dict]:
    entity_type = EntityType(entity_type)
    collection = db[entity_type.value]

    old_rows = await collection.find({"id": {"$in": ids}, "is_deleted": {"$ne": True}}, {"_id": 0}).to_list(None)
    if not old_rows:
        return []

    now = now_iso()
    changes = {"assigned_to": assignee_id, "updated_by": user_id, "updated_at": now}
    await collection.update_many({"id": {"$in": [r["id"] for r in old_rows]}}, {"$set": changes})

    updated = []
    for row in old_rows:
        new = {**row, **changes}
        await log_audit(db, user_id, action, entity_type.value, row["id"], row, new)
        updated.append(new)
    return updated
