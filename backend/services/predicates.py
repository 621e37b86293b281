"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Predicate matcher                                                 ║
║                                                                              ║
║  matches(record, filters) -> True | False | None                             ║
║                                                                              ║
║  Pure, synchronous, no I/O. Logical AND over every filter field that is set. ║
║  None = INDETERMINATE: the filter set holds a field that needs the database  ║
║  (per-user read/export tables, position rank). Callers must abstain.         ║
║                                                                              ║
║  Mirrors the server query built in services/queries.py field by field.       ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from typing import Optional

from models.filters import (
    FilterSet,
    CompanyFilters,
    INDETERMINATE_FIELDS,
    NO_STATUS,
    NO_COMPANY,
    UNASSIGNED,
)


def _contains(haystack, needle: str) -> bool:
    return bool(haystack) and needle in str(haystack).lower()


def _is_empty(value) -> bool:
    return value is None or value == ""


# ════════════════════════════════════════════════════════════════════════
# FIELD PREDICATES
# ════════════════════════════════════════════════════════════════════════

def match_search_representative(record: dict, search: str) -> bool:
    """First+last name, first name, last name, role, or the embedded company name"""
    needle = search.lower()
    first = record.get("first_name") or ""
    last = record.get("last_name") or ""
    full_name = f"{first} {last}".strip()

    if _contains(full_name, needle) or _contains(record.get("full_name"), needle):
        return True
    if _contains(first, needle) or _contains(last, needle):
        return True
    if _contains(record.get("role"), needle):
        return True

    company = record.get("company") or {}
    return _contains(company.get("company_name"), needle)


def match_search_company(record: dict, search: str) -> bool:
    needle = search.lower()
    return any(
        _contains(record.get(field), needle)
        for field in ("company_name", "industry", "location")
    )


def match_assigned_to(record: dict, assigned_to: str) -> bool:
    if assigned_to == UNASSIGNED:
        return _is_empty(record.get("assigned_to"))
    return record.get("assigned_to") == assigned_to


def match_status(record: dict, status: str) -> bool:
    if status == NO_STATUS:
        return _is_empty(record.get("status"))
    return record.get("status") == status


def match_company_id(record: dict, company_id: str) -> bool:
    if company_id == NO_COMPANY:
        return _is_empty(record.get("company_id"))
    return record.get("company_id") == company_id


def match_created_range(record: dict, created_from: Optional[str], created_to: Optional[str]) -> bool:
    created_at = record.get("created_at")
    if not created_at:
        return False
    if created_from and created_at < created_from:
        return False
    if created_to and created_at > created_to:
        return False
    return True


# ════════════════════════════════════════════════════════════════════════
# MATCHER
# ════════════════════════════════════════════════════════════════════════

def matches(record: dict, filters: FilterSet) -> Optional[bool]:
    """
    Decide whether a single record satisfies the filter set.

    Returns True / False, or None when the answer needs a database round trip
    (see INDETERMINATE_FIELDS). An empty filter set always matches.
    """
    active = filters.active()
    if not active:
        return True

    if any(field in active for field in INDETERMINATE_FIELDS):
        return None

    search = active.get("search")
    if search:
        if isinstance(filters, CompanyFilters):
            if not match_search_company(record, search):
                return False
        elif not match_search_representative(record, search):
            return False

    company_ids = active.get("company_ids")
    if company_ids and record.get("company_id") not in company_ids:
        return False

    company_id = active.get("company_id")
    if company_id and not match_company_id(record, company_id):
        return False

    assigned_to = active.get("assigned_to")
    if assigned_to and not match_assigned_to(record, assigned_to):
        return False

    status = active.get("status")
    if status and not match_status(record, status):
        return False

    contacted_by = active.get("contacted_by")
    if contacted_by and record.get("contacted_by") not in contacted_by:
        return False

    if active.get("created_from") or active.get("created_to"):
        if not match_created_range(record, active.get("created_from"), active.get("created_to")):
            return False

    return True
