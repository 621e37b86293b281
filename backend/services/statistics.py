"""
DCLense - Statistics

- contact method stats / agent stats over a date range ("7", "30", "90", "all")
- creation stats: records created per user between two dates
- dashboard counts (per-user unread resolution)
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from services.user_reads import entity_counts

logger = logging.getLogger("statistics")

DATE_RANGES = ("7", "30", "90", "all")
RESPONSE_STATUSES = ("Contacted", "Interested", "Not Interested", "Asked to Reach Out Later")
CONVERSION_OUTCOMES = ("Client", "Converted")

USER_PROJECTION = {"_id": 0, "id": 1, "first_name": 1, "last_name": 1, "email": 1}


def range_start(date_range: str, now: datetime = None) -> Optional[str]:
    """ISO lower bound for a date range, None for "all" """
    if date_range == "all":
        return None
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(days=int(date_range))).isoformat()


def _rates(stat: dict) -> dict:
    contacted = stat["leads_contacted"]
    return {
        **stat,
        "response_rate": round(stat["responses"] / contacted * 100, 1) if contacted else 0,
        "conversion_rate": round(stat["conversions"] / contacted * 100, 1) if contacted else 0,
    }


def _count(stat: dict, rep: dict) -> None:
    if rep.get("contact_date") or rep.get("status"):
        stat["leads_contacted"] += 1
    if rep.get("status") in RESPONSE_STATUSES:
        stat["responses"] += 1
    if rep.get("outcome") in CONVERSION_OUTCOMES or rep.get("status") == "Client":
        stat["conversions"] += 1


def _user_name(user: Optional[dict]) -> Optional[str]:
    if not user:
        return None
    return f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()


# ==================== PURE AGGREGATIONS ====================

def aggregate_contact_methods(representatives: List[dict]) -> List[dict]:
    stats: Dict[str, dict] = {}
    for rep in representatives:
        method = rep.get("contact_source") or "Unknown"
        stat = stats.setdefault(method, {"method": method, "leads_contacted": 0, "responses": 0, "conversions": 0})
        _count(stat, rep)
    return [_rates(s) for s in stats.values()]


def aggregate_agents(representatives: List[dict], users: Dict[str, dict], selected_agent: str = "all") -> List[dict]:
    """Agent = contacted_by, falling back to assigned_to"""
    stats: Dict[str, dict] = {}
    for rep in representatives:
        agent_name = (
            _user_name(users.get(rep.get("contacted_by")))
            or _user_name(users.get(rep.get("assigned_to")))
            or "Unassigned"
        )
        if selected_agent != "all" and agent_name != selected_agent:
            continue

        stat = stats.setdefault(agent_name, {
            "agent_name": agent_name, "leads_contacted": 0, "responses": 0, "conversions": 0,
            "last_activity": None,
        })
        _count(stat, rep)

        activity = rep.get("contact_date") or rep.get("updated_at")
        if activity and (not stat["last_activity"] or activity > stat["last_activity"]):
            stat["last_activity"] = activity
    return [_rates(s) for s in stats.values()]


def aggregate_creations(companies: List[dict], representatives: List[dict], users: Dict[str, dict]) -> List[dict]:
    per_user: Dict[str, dict] = {}

    def bucket(user_id):
        return per_user.setdefault(user_id or "unknown", {
            "user_id": user_id,
            "user_name": _user_name(users.get(user_id)) or "Unknown",
            "companies_created": 0,
            "representatives_created": 0,
        })

    for company in companies:
        bucket(company.get("created_by"))["companies_created"] += 1
    for rep in representatives:
        bucket(rep.get("created_by"))["representatives_created"] += 1

    result = list(per_user.values())
    for row in result:
        row["total"] = row["companies_created"] + row["representatives_created"]
    return sorted(result, key=lambda r: r["total"], reverse=True)


# ==================== DATABASE ====================

async def _users_map(db) -> Dict[str, dict]:
    users = await db.users.find({}, USER_PROJECTION).to_list(None)
    return {u["id"]: u for u in users}


async def _representatives_since(db, date_range: str) -> List[dict]:
    query = {"is_deleted": {"$ne": True}}
    start = range_start(date_range)
    if start:
        query["contact_date"] = {"$gte": start[:10]}
    return await db.representatives.find(
        query,
        {"_id": 0, "contact_source": 1, "status": 1, "outcome": 1, "contact_date": 1,
         "contacted_by": 1, "assigned_to": 1, "updated_at": 1}
    ).to_list(None)


async def get_contact_method_stats(db, date_range: str = "30") -> List[dict]:
    return aggregate_contact_methods(await _representatives_since(db, date_range))


async def get_agent_stats(db, date_range: str = "30", selected_agent: str = "all") -> List[dict]:
    representatives = await _representatives_since(db, date_range)
    return aggregate_agents(representatives, await _users_map(db), selected_agent)


async def get_creation_stats(db, start_date: str, end_date: str) -> dict:
    """start_date / end_date: YYYY-MM-DD, both inclusive"""
    end_exclusive = (datetime.strptime(end_date[:10], "%Y-%m-%d") + timedelta(days=1)).strftime("%Y-%m-%d")
    query = {"created_at": {"$gte": start_date[:10], "$lt": end_exclusive}}
    projection = {"_id": 0, "created_by": 1}

    companies = await db.companies.find(query, projection).to_list(None)
    representatives = await db.representatives.find(query, projection).to_list(None)

    return {
        "start_date": start_date,
        "end_date": end_date,
        "total_companies": len(companies),
        "total_representatives": len(representatives),
        "by_user": aggregate_creations(companies, representatives, await _users_map(db)),
    }


async def get_dashboard_counts(db, user_id: str) -> dict:
    counts = await entity_counts(db, user_id)
    counts["active_clients"] = await db.companies.count_documents({"status": "Client", "is_deleted": {"$ne": True}})
    return counts
