"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - List queries                                                      ║
║                                                                              ║
║  build_*_query()  : filter set -> MongoDB query (pure)                       ║
║  resolve_lookups(): the filter fields that need the database                 ║
║                     (company-name search, per-user unread, exports, rank)    ║
║  fetch_page()     : authoritative page {rows, total}                         ║
║  enrich_rows()    : joins company / users / representatives                  ║
║                                                                              ║
║  Field semantics must stay aligned with services/predicates.py.              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import re
import logging
from typing import Dict, List, Optional

from config import PAGE_SIZE_DEFAULT
from models.entity import EntityType
from models.filters import FilterSet, NO_COMPANY, NO_STATUS, UNASSIGNED
from services.user_reads import apply_read_overrides, get_overrides

logger = logging.getLogger("queries")

EMPTY_VALUES = [None, ""]
USER_PROJECTION = {"_id": 0, "id": 1, "first_name": 1, "last_name": 1, "email": 1}


def _regex(term: str) -> dict:
    """Case-insensitive substring match, user input escaped"""
    return {"$regex": re.escape(term), "$options": "i"}


def _sort_spec(filters: FilterSet) -> List[tuple]:
    direction = 1 if filters.sort_order == "asc" else -1
    sort_field = filters.sort_field or "created_at"
    spec = [(sort_field, direction)]
    if sort_field != "created_at":
        spec.append(("created_at", -1))
    return spec


# ════════════════════════════════════════════════════════════════════════
# QUERY BUILDERS
# ════════════════════════════════════════════════════════════════════════

def _common_conditions(filters: FilterSet) -> List[dict]:
    conditions = []

    if filters.assigned_to:
        if filters.assigned_to == UNASSIGNED:
            conditions.append({"assigned_to": {"$in": EMPTY_VALUES}})
        else:
            conditions.append({"assigned_to": filters.assigned_to})

    if filters.status:
        if filters.status == NO_STATUS:
            conditions.append({"status": {"$in": EMPTY_VALUES}})
        else:
            conditions.append({"status": filters.status})

    created = {}
    if filters.created_from:
        created["$gte"] = filters.created_from
    if filters.created_to:
        created["$lte"] = filters.created_to
    if created:
        conditions.append({"created_at": created})

    return conditions


def _unread_condition(unread_filter: Optional[str], overrides: Dict[str, bool]) -> Optional[dict]:
    """Effective unread = user override when present, else the record's mark_unread (unset = unread)"""
    if not unread_filter:
        return None
    want_unread = unread_filter == "unread_only"
    overridden = list(overrides.keys())
    override_hits = [rid for rid, unread in overrides.items() if unread == want_unread]
    default_match = {"mark_unread": {"$ne": False}} if want_unread else {"mark_unread": False}
    return {"$or": [
        {"id": {"$in": override_hits}},
        {"$and": [{"id": {"$nin": overridden}}, default_match]},
    ]}


def _combine(conditions: List[dict]) -> dict:
    if len(conditions) == 1:
        return conditions[0]
    return {"$and": conditions}


def build_company_query(filters: FilterSet, user_id: str = None, lookups: dict = None) -> dict:
    lookups = lookups or {}
    conditions = [{"is_deleted": {"$ne": True}}]

    if filters.search:
        term = _regex(filters.search)
        conditions.append({"$or": [
            {"company_name": term},
            {"industry": term},
            {"location": term},
        ]})

    conditions.extend(_common_conditions(filters))

    unread = _unread_condition(filters.unread_filter, lookups.get("read_overrides", {}))
    if unread:
        conditions.append(unread)

    return _combine(conditions)


def build_representative_query(filters: FilterSet, user_id: str = None, lookups: dict = None) -> dict:
    """
    Server-side twin of predicates.matches() for representatives.
    `lookups` carries the values resolve_lookups() read from the database.
    """
    lookups = lookups or {}
    conditions = [{"is_deleted": {"$ne": True}}]

    if filters.company_ids:
        conditions.append({"company_id": {"$in": list(filters.company_ids)}})

    if filters.company_id:
        if filters.company_id == NO_COMPANY:
            conditions.append({"company_id": {"$in": EMPTY_VALUES}})
        else:
            conditions.append({"company_id": filters.company_id})

    if filters.contacted_by:
        conditions.append({"contacted_by": {"$in": list(filters.contacted_by)}})

    if filters.search:
        term = _regex(filters.search)
        full_name = {"$concat": [
            {"$ifNull": ["$first_name", ""]}, " ", {"$ifNull": ["$last_name", ""]},
        ]}
        alternatives = [
            {"first_name": term},
            {"last_name": term},
            {"full_name": term},
            {"role": term},
            {"$expr": {"$regexMatch": {
                "input": full_name, "regex": re.escape(filters.search), "options": "i",
            }}},
        ]
        company_ids = lookups.get("search_company_ids") or []
        if company_ids:
            alternatives.append({"company_id": {"$in": company_ids}})
        conditions.append({"$or": alternatives})

    conditions.extend(_common_conditions(filters))

    unread = _unread_condition(filters.unread_filter, lookups.get("read_overrides", {}))
    if unread:
        conditions.append(unread)

    if filters.exported_filter:
        exported_ids = lookups.get("exported_ids", [])
        if filters.exported_filter == "exported_only":
            conditions.append({"id": {"$in": exported_ids}})
        else:
            conditions.append({"id": {"$nin": exported_ids}})

    if filters.rep_position:
        conditions.append({"id": {"$in": lookups.get("position_ids", [])}})

    return _combine(conditions)


QUERY_BUILDERS = {
    EntityType.COMPANIES: build_company_query,
    EntityType.REPRESENTATIVES: build_representative_query,
}


# ════════════════════════════════════════════════════════════════════════
# DATABASE-BACKED FILTER FIELDS
# ════════════════════════════════════════════════════════════════════════

async def representatives_at_position(db, position: int) -> List[str]:
    """Ids of the representatives ranked `position` (1-based, by created_at) in their company"""
    pipeline = [
        {"$match": {"is_deleted": {"$ne": True}, "company_id": {"$nin": EMPTY_VALUES}}},
        {"$sort": {"created_at": 1}},
        {"$group": {"_id": "$company_id", "ids": {"$push": "$id"}}},
        {"$project": {"_id": 0, "id": {"$arrayElemAt": ["$ids", position - 1]}}},
        {"$match": {"id": {"$ne": None}}},
    ]
    rows = await db.representatives.aggregate(pipeline).to_list(None)
    return [row["id"] for row in rows if row.get("id")]


async def exported_representative_ids(db, user_id: str) -> List[str]:
    rows = await db.user_exports.find(
        {"user_id": user_id}, {"_id": 0, "representative_id": 1}
    ).to_list(None)
    return [r["representative_id"] for r in rows if r.get("representative_id")]


async def resolve_lookups(db, entity_type: EntityType, filters: FilterSet, user_id: str = None) -> dict:
    entity_type = EntityType(entity_type)
    lookups = {}

    if filters.unread_filter and user_id:
        lookups["read_overrides"] = await get_overrides(db, user_id, entity_type)

    if entity_type != EntityType.REPRESENTATIVES:
        return lookups

    if filters.search:
        companies = await db.companies.find(
            {"company_name": _regex(filters.search)}, {"_id": 0, "id": 1}
        ).to_list(None)
        lookups["search_company_ids"] = [c["id"] for c in companies]

    if filters.exported_filter:
        lookups["exported_ids"] = await exported_representative_ids(db, user_id) if user_id else []

    if filters.rep_position:
        lookups["position_ids"] = await representatives_at_position(db, filters.rep_position)

    return lookups


async def build_query(db, entity_type: EntityType, filters: FilterSet, user_id: str = None) -> dict:
    entity_type = EntityType(entity_type)
    lookups = await resolve_lookups(db, entity_type, filters, user_id)
    return QUERY_BUILDERS[entity_type](filters, user_id, lookups)


# ════════════════════════════════════════════════════════════════════════
# JOINS
# ════════════════════════════════════════════════════════════════════════

def _user_summary(user: Optional[dict]) -> Optional[dict]:
    if not user:
        return None
    return {"first_name": user.get("first_name"), "last_name": user.get("last_name")}


async def _users_by_id(db, ids) -> Dict[str, dict]:
    ids = [i for i in set(ids) if i]
    if not ids:
        return {}
    users = await db.users.find({"id": {"$in": ids}}, USER_PROJECTION).to_list(None)
    return {u["id"]: u for u in users}


async def enrich_rows(db, entity_type: EntityType, rows: List[dict]) -> List[dict]:
    """Embed related company / users (and, for companies, their representatives)"""
    if not rows:
        return rows
    entity_type = EntityType(entity_type)

    user_ids = []
    for row in rows:
        user_ids.extend([row.get("assigned_to"), row.get("created_by"), row.get("contacted_by")])
    users = await _users_by_id(db, user_ids)

    enriched = []
    if entity_type == EntityType.REPRESENTATIVES:
        company_ids = list({r["company_id"] for r in rows if r.get("company_id")})
        companies = {}
        if company_ids:
            found = await db.companies.find(
                {"id": {"$in": company_ids}}, {"_id": 0, "id": 1, "company_name": 1, "status": 1}
            ).to_list(None)
            companies = {c["id"]: c for c in found}

        for row in rows:
            company = companies.get(row.get("company_id"))
            enriched.append({
                **row,
                "company": {"company_name": company.get("company_name"), "status": company.get("status")} if company else None,
                "assigned_user": _user_summary(users.get(row.get("assigned_to"))),
                "contacted_user": _user_summary(users.get(row.get("contacted_by"))),
                "created_user": _user_summary(users.get(row.get("created_by"))),
            })
        return enriched

    company_ids = [r["id"] for r in rows]
    reps = await db.representatives.find(
        {"company_id": {"$in": company_ids}, "is_deleted": {"$ne": True}},
        {"_id": 0, "id": 1, "full_name": 1, "role": 1, "company_id": 1},
    ).to_list(None)
    reps_by_company: Dict[str, List[dict]] = {}
    for rep in reps:
        reps_by_company.setdefault(rep["company_id"], []).append(
            {"id": rep["id"], "full_name": rep.get("full_name"), "role": rep.get("role")}
        )

    for row in rows:
        enriched.append({
            **row,
            "assigned_user": _user_summary(users.get(row.get("assigned_to"))),
            "created_user": _user_summary(users.get(row.get("created_by"))),
            "representatives": reps_by_company.get(row["id"], []),
        })
    return enriched


# ════════════════════════════════════════════════════════════════════════
# FETCH
# ════════════════════════════════════════════════════════════════════════

async def _find_rows(db, entity_type: EntityType, query: dict, filters: FilterSet,
                     skip: int = 0, limit: int = None) -> List[dict]:
    collection = db[entity_type.value]
    sort = _sort_spec(filters)

    if entity_type == EntityType.REPRESENTATIVES and filters.sort_field == "company_name":
        # the sort key lives on the related company
        pipeline = [
            {"$match": query},
            {"$lookup": {"from": "companies", "localField": "company_id",
                         "foreignField": "id", "as": "_company"}},
            {"$addFields": {"_company_name": {"$first": "$_company.company_name"}}},
            {"$sort": {("_company_name" if f == "company_name" else f): d for f, d in sort}},
            {"$skip": skip},
        ]
        if limit:
            pipeline.append({"$limit": limit})
        pipeline.append({"$project": {"_id": 0, "_company": 0, "_company_name": 0}})
        return await collection.aggregate(pipeline).to_list(None)

    cursor = collection.find(query, {"_id": 0}).sort(sort).skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return await cursor.to_list(limit)


async def fetch_page(db, entity_type: EntityType, filters: FilterSet, page: int = 1,
                     page_size: int = PAGE_SIZE_DEFAULT, user_id: str = None) -> dict:
    """
    Authoritative page for a list view.
    Returns {"rows", "total", "page", "page_size"}; rows carry the user's effective mark_unread.
    """
    entity_type = EntityType(entity_type)
    page = max(int(page or 1), 1)
    query = await build_query(db, entity_type, filters, user_id)

    total = await db[entity_type.value].count_documents(query)
    rows = await _find_rows(db, entity_type, query, filters, skip=(page - 1) * page_size, limit=page_size)
    rows = await enrich_rows(db, entity_type, rows)
    if user_id:
        rows = await apply_read_overrides(db, user_id, entity_type, rows)

    return {"rows": rows, "total": total, "page": page, "page_size": page_size}


async def fetch_all(db, entity_type: EntityType, filters: FilterSet, user_id: str = None) -> List[dict]:
    """Every row matching the filters, no pagination (exports)"""
    entity_type = EntityType(entity_type)
    query = await build_query(db, entity_type, filters, user_id)
    rows = await _find_rows(db, entity_type, query, filters)
    rows = await enrich_rows(db, entity_type, rows)
    if user_id:
        rows = await apply_read_overrides(db, user_id, entity_type, rows)
    return rows
