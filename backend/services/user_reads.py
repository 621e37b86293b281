"""
DCLense - Per-user read status

Each company / representative has a global `mark_unread` default. A user who
opens or toggles a record gets a row in `user_reads` that overrides it, for
that user only.

user_reads document:
    {id, user_id, entity_type, company_id, representative_id, mark_unread, updated_at}
"""

import logging
from typing import Dict, List, Optional

from config import new_id, now_iso
from models.entity import EntityType, ENTITY_LABELS

logger = logging.getLogger("user_reads")


def _column(entity_type: EntityType) -> str:
    return "company_id" if EntityType(entity_type) == EntityType.COMPANIES else "representative_id"


def resolve_effective(override: Optional[bool], default: Optional[bool]) -> bool:
    """Per-user value when present, else the table default (unread when unset)"""
    if override is not None:
        return bool(override)
    if default is None:
        return True
    return bool(default)


async def get_read_status(db, user_id: str, entity_type: EntityType, entity_id: str) -> bool:
    column = _column(entity_type)
    row = await db.user_reads.find_one({"user_id": user_id, column: entity_id}, {"_id": 0})
    if row:
        return bool(row.get("mark_unread"))

    record = await db[EntityType(entity_type).value].find_one(
        {"id": entity_id}, {"_id": 0, "mark_unread": 1}
    )
    return resolve_effective(None, (record or {}).get("mark_unread"))


async def set_read_status(db, user_id: str, entity_type: EntityType, entity_id: str, mark_unread: bool) -> dict:
    """Upsert the user's override for one record"""
    entity_type = EntityType(entity_type)
    column = _column(entity_type)
    other = "representative_id" if column == "company_id" else "company_id"

    await db.user_reads.update_one(
        {"user_id": user_id, column: entity_id},
        {
            "$set": {"mark_unread": bool(mark_unread), "updated_at": now_iso()},
            "$setOnInsert": {
                "id": new_id(),
                "user_id": user_id,
                "entity_type": ENTITY_LABELS[entity_type],
                column: entity_id,
                other: None,
            },
        },
        upsert=True,
    )
    return {"user_id": user_id, column: entity_id, "mark_unread": bool(mark_unread)}


async def bulk_set_read_status(db, user_id: str, entity_type: EntityType, entity_ids: List[str], mark_unread: bool) -> dict:
    updated = 0
    errors = []
    for entity_id in entity_ids:
        try:
            await set_read_status(db, user_id, entity_type, entity_id, mark_unread)
            updated += 1
        except Exception as e:
            logger.error(f"Read status update failed for {entity_id}: {str(e)}")
            errors.append({"id": entity_id, "error": str(e)})
    return {"updated": updated, "errors": errors}


async def mark_as_read(db, user_id: str, entity_type: EntityType, entity_id: str) -> dict:
    """Called when a user opens a record"""
    return await set_read_status(db, user_id, entity_type, entity_id, False)


async def get_overrides(db, user_id: str, entity_type: EntityType, entity_ids: List[str] = None) -> Dict[str, bool]:
    """{entity_id: mark_unread} for the user's override rows"""
    column = _column(entity_type)
    query = {"user_id": user_id, column: {"$ne": None}}
    if entity_ids is not None:
        query[column] = {"$in": list(entity_ids)}

    rows = await db.user_reads.find(query, {"_id": 0, column: 1, "mark_unread": 1}).to_list(None)
    return {row[column]: bool(row.get("mark_unread")) for row in rows if row.get(column)}


async def apply_read_overrides(db, user_id: str, entity_type: EntityType, rows: List[dict]) -> List[dict]:
    """Replace each row's mark_unread by the user's effective value"""
    if not rows:
        return rows
    overrides = await get_overrides(db, user_id, entity_type, [r["id"] for r in rows])
    return [
        {**row, "mark_unread": resolve_effective(overrides.get(row["id"]), row.get("mark_unread"))}
        for row in rows
    ]


async def entity_counts(db, user_id: str) -> dict:
    """Totals and per-user unread counts for the dashboard"""
    counts = {}
    for entity_type in EntityType:
        collection = db[entity_type.value]
        records = await collection.find(
            {"is_deleted": {"$ne": True}}, {"_id": 0, "id": 1, "mark_unread": 1}
        ).to_list(None)
        overrides = await get_overrides(db, user_id, entity_type)

        unread = sum(
            1 for r in records
            if resolve_effective(overrides.get(r["id"]), r.get("mark_unread"))
        )
        counts[entity_type.value] = {"total": len(records), "unread": unread}

    return {
        "total_companies": counts["companies"]["total"],
        "total_representatives": counts["representatives"]["total"],
        "unread_companies": counts["companies"]["unread"],
        "unread_representatives": counts["representatives"]["unread"],
    }
