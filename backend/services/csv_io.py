"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - CSV import / export                                               ║
║                                                                              ║
║  IMPORT (rows already mapped to field names by the client):                  ║
║  - companies      : status checked against COMPANY_STATUSES (else None),     ║
║                     assigned_to email -> user id, duplicates reported        ║
║  - representatives: company resolved or created by name, full_name derived,  ║
║                     statuses normalized case-insensitively,                  ║
║                     duplicates on (full_name, company_id) reported           ║
║  Duplicate company names are skipped, duplicate representatives are          ║
║  inserted. Both are reported. Everything imported is unread.                 ║
║                                                                              ║
║  MODIFY: update existing rows by natural key, non-empty values only.         ║
║  EXPORT: flatten company / users, record user_exports, export_logs, audit.   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import io
import re
import csv
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from config import new_id, now_iso
from models.company import COMPANY_STATUSES
from models.entity import EntityType
from models.representative import normalize_representative_status, build_full_name
from services.audit_logger import log_audit, log_export
from services.records import find_company_by_name

logger = logging.getLogger("csv_io")

COMPANY_MODIFY_FIELDS = [
    "industry", "location", "website", "linkedin", "notes", "last_activity_date",
]
REPRESENTATIVE_MODIFY_FIELDS = [
    "first_name", "last_name", "role", "email", "phone", "linkedin_profile",
    "contact_source", "outcome", "notes", "reminder_date",
]
COMPANY_IMPORT_FIELDS = COMPANY_MODIFY_FIELDS + ["company_name", "status", "assigned_to"]
REPRESENTATIVE_IMPORT_FIELDS = REPRESENTATIVE_MODIFY_FIELDS + [
    "status", "assigned_to", "contacted_by", "contact_date",
]


def _blank(value) -> bool:
    return value is None or str(value).strip() == ""


# ==================== PARSE ====================

def parse_csv(text: str) -> dict:
    """
    CSV text -> {"headers": [...], "rows": [{header: value}]}
    Quoted fields and "" escapes are honored, cells are trimmed, blank lines skipped.
    """
    if not text:
        return {"headers": [], "rows": []}
    text = text.lstrip("\ufeff")

    lines = [row for row in csv.reader(io.StringIO(text)) if any(cell.strip() for cell in row)]
    if not lines:
        return {"headers": [], "rows": []}

    headers = [h.strip() for h in lines[0]]
    rows = []
    for values in lines[1:]:
        values = [v.strip() for v in values]
        rows.append({h: (values[i] if i < len(values) else "") for i, h in enumerate(headers)})
    return {"headers": headers, "rows": rows}


def normalize_date(value) -> Optional[str]:
    """Any ISO-ish date -> YYYY-MM-DD, None if unparseable"""
    if _blank(value):
        return None
    raw = str(value).strip()
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%d.%m.%Y"):
        try:
            return datetime.strptime(raw[:10], fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except ValueError:
        return None


def normalize_company_status(value) -> Optional[str]:
    if _blank(value):
        return None
    value = str(value).strip()
    return value if value in COMPANY_STATUSES else None


# ==================== LOOKUPS ====================

class _UserResolver:
    """email -> user id, cached for one import"""

    def __init__(self, db):
        self.db = db
        self._cache: Dict[str, Optional[str]] = {}

    async def resolve(self, email) -> Optional[str]:
        if _blank(email):
            return None
        key = str(email).strip().lower()
        if key not in self._cache:
            user = await self.db.users.find_one({"email": key}, {"_id": 0, "id": 1})
            self._cache[key] = user["id"] if user else None
        return self._cache[key]


async def _find_representative(db, company_id: str, full_name: str) -> Optional[dict]:
    return await db.representatives.find_one(
        {
            "company_id": company_id,
            "full_name": {"$regex": f"^{re.escape(full_name)}$", "$options": "i"},
            "is_deleted": {"$ne": True},
        },
        {"_id": 0}
    )


def _new_document(data: dict, user_id: str) -> dict:
    record_id = new_id()
    now = now_iso()
    return {
        "_id": record_id,
        "id": record_id,
        **data,
        "mark_unread": True,
        "is_deleted": False,
        "created_by": user_id,
        "updated_by": user_id,
        "created_at": now,
        "updated_at": now,
    }


# ==================== IMPORT ====================

async def import_companies(db, rows: List[dict], user_id: str) -> dict:
    users = _UserResolver(db)
    documents = []
    duplicates = []
    seen = set()

    for row in rows:
        name = (row.get("company_name") or "").strip()
        if not name:
            continue

        data = {k: row.get(k) for k in COMPANY_MODIFY_FIELDS if not _blank(row.get(k))}
        data["company_name"] = name
        data["status"] = normalize_company_status(row.get("status"))
        data["assigned_to"] = await users.resolve(row.get("assigned_to"))

        key = name.lower()
        if key in seen:
            duplicates.append({"imported_name": name, "existing_name": name, "existing_id": None})
            continue
        seen.add(key)

        existing = await find_company_by_name(db, name)
        if existing:
            # company_name stays unique: reported, not inserted
            duplicates.append({
                "imported_name": name,
                "existing_name": existing["company_name"],
                "existing_id": existing["id"],
            })
            continue

        documents.append(_new_document(data, user_id))

    if documents:
        await db.companies.insert_many(documents)

    await log_audit(db, user_id, "csv_import", "companies", None, None, {
        "import_count": len(documents),
        "import_type": "companies",
        "duplicates_found": len(duplicates),
    })
    logger.info(f"[CSV_IMPORT] companies: {len(documents)} imported, {len(duplicates)} duplicates")

    for doc in documents:
        doc.pop("_id", None)
    return {"imported": len(documents), "records": documents, "duplicates": duplicates}


async def _resolve_companies(db, rows: List[dict], user_id: str, create: bool) -> Dict[str, str]:
    """company name (as written in the file) -> company id"""
    mapping: Dict[str, str] = {}
    for row in rows:
        name = (row.get("company_name") or "").strip()
        if not name or name in mapping:
            continue

        existing = await find_company_by_name(db, name)
        if existing:
            mapping[name] = existing["id"]
            continue
        if not create:
            continue

        company = _new_document({"company_name": name}, user_id)
        await db.companies.insert_one(company)
        company.pop("_id", None)
        await log_audit(db, user_id, "create", "companies", company["id"], None,
                        {**company, "created_during_csv_import": True})
        mapping[name] = company["id"]
    return mapping


async def import_representatives(db, rows: List[dict], user_id: str) -> dict:
    users = _UserResolver(db)
    companies = await _resolve_companies(db, rows, user_id, create=True)
    company_names = {v: k for k, v in companies.items()}

    documents = []
    duplicates = []
    seen = set()

    for row in rows:
        first_name = (row.get("first_name") or "").strip()
        if not first_name:
            continue

        data = {k: row.get(k) for k in REPRESENTATIVE_MODIFY_FIELDS if not _blank(row.get(k))}
        data["first_name"] = first_name
        data["full_name"] = build_full_name(first_name, row.get("last_name"))
        data["company_id"] = companies.get((row.get("company_name") or "").strip())
        data["status"] = normalize_representative_status(row.get("status"))
        data["assigned_to"] = await users.resolve(row.get("assigned_to"))
        data["contacted_by"] = await users.resolve(row.get("contacted_by"))
        data["contact_date"] = normalize_date(row.get("contact_date"))

        if data["company_id"]:
            key = (data["company_id"], data["full_name"].lower())
            if key not in seen:
                seen.add(key)
                existing = await _find_representative(db, data["company_id"], data["full_name"])
                if existing:
                    duplicates.append({
                        "existing_id": existing["id"],
                        "existing_name": existing.get("full_name"),
                        "imported_name": data["full_name"],
                        "company_name": company_names.get(data["company_id"], ""),
                    })

        documents.append(_new_document(data, user_id))

    if documents:
        await db.representatives.insert_many(documents)

    await log_audit(db, user_id, "csv_import", "representatives", None, None, {
        "import_count": len(documents),
        "import_type": "representatives",
        "duplicates_found": len(duplicates),
    })
    logger.info(f"[CSV_IMPORT] representatives: {len(documents)} imported, {len(duplicates)} duplicates")

    for doc in documents:
        doc.pop("_id", None)
    return {"imported": len(documents), "records": documents, "duplicates": duplicates}


# ==================== MODIFY ====================

async def modify_companies(db, rows: List[dict], user_id: str) -> dict:
    """Update companies matched by name. Unknown names are ignored. company_name itself never changes."""
    users = _UserResolver(db)
    updated = []

    for row in rows:
        name = (row.get("company_name") or "").strip()
        if not name:
            continue
        existing = await find_company_by_name(db, name)
        if not existing:
            continue

        changes = {k: row[k] for k in COMPANY_MODIFY_FIELDS if not _blank(row.get(k))}
        status = normalize_company_status(row.get("status"))
        if status:
            changes["status"] = status
        assignee = await users.resolve(row.get("assigned_to"))
        if assignee:
            changes["assigned_to"] = assignee
        if not changes:
            continue

        changes["updated_by"] = user_id
        changes["updated_at"] = now_iso()
        await db.companies.update_one({"id": existing["id"]}, {"$set": changes})
        updated.append({**existing, **changes})

    if updated:
        await log_audit(db, user_id, "csv_modify", "companies", None, None, {
            "modified_count": len(updated), "import_type": "companies",
        })
    return {"modified": len(updated), "records": updated}


async def modify_representatives(db, rows: List[dict], user_id: str) -> dict:
    """Update representatives matched by (full_name, company name). Nothing is created."""
    users = _UserResolver(db)
    companies = await _resolve_companies(db, rows, user_id, create=False)
    updated = []

    for row in rows:
        full_name = build_full_name(row.get("first_name"), row.get("last_name"))
        company_id = companies.get((row.get("company_name") or "").strip())
        if not full_name or not company_id:
            continue
        existing = await _find_representative(db, company_id, full_name)
        if not existing:
            continue

        changes = {k: row[k] for k in REPRESENTATIVE_MODIFY_FIELDS if not _blank(row.get(k))}
        status = normalize_representative_status(row.get("status"))
        if status:
            changes["status"] = status
        for field in ("assigned_to", "contacted_by"):
            resolved = await users.resolve(row.get(field))
            if resolved:
                changes[field] = resolved
        contact_date = normalize_date(row.get("contact_date"))
        if contact_date:
            changes["contact_date"] = contact_date
        if not changes:
            continue

        if "first_name" in changes or "last_name" in changes:
            changes["full_name"] = build_full_name(
                changes.get("first_name", existing.get("first_name")),
                changes.get("last_name", existing.get("last_name")),
            )
        changes["updated_by"] = user_id
        changes["updated_at"] = now_iso()
        await db.representatives.update_one({"id": existing["id"]}, {"$set": changes})
        updated.append({**existing, **changes})

    if updated:
        await log_audit(db, user_id, "csv_modify", "representatives", None, None, {
            "modified_count": len(updated), "import_type": "representatives",
        })
    return {"modified": len(updated), "records": updated}


IMPORTERS = {
    (EntityType.COMPANIES, "import"): import_companies,
    (EntityType.COMPANIES, "modify"): modify_companies,
    (EntityType.REPRESENTATIVES, "import"): import_representatives,
    (EntityType.REPRESENTATIVES, "modify"): modify_representatives,
}


# ==================== EXPORT ====================

def _user_name(user: Optional[dict]) -> str:
    if not user:
        return ""
    return f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()


def flatten_for_export(entity_type: EntityType, row: dict) -> dict:
    flat = dict(row)
    if EntityType(entity_type) == EntityType.REPRESENTATIVES:
        company = row.get("company") or {}
        flat["company_name"] = company.get("company_name") or ""
        flat["company_status"] = company.get("status") or ""
    if row.get("assigned_user"):
        flat["assigned_to"] = _user_name(row["assigned_user"])
    if row.get("contacted_user"):
        flat["contacted_by"] = _user_name(row["contacted_user"])
    if row.get("created_user"):
        flat["created_by"] = _user_name(row["created_user"])
    return flat


def build_csv(rows: List[dict], fields: List[str]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(fields)
    for row in rows:
        writer.writerow([
            "" if row.get(field) is None else row.get(field)
            for field in fields
        ])
    return output.getvalue()


def export_filename(entity_type: EntityType) -> str:
    date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return f"{EntityType(entity_type).value}_export_{date_str}.csv"


async def export_rows(db, entity_type: EntityType, rows: List[dict], fields: List[str], user_id: str,
                      purpose: str = "", filters: dict = None) -> dict:
    """Build the CSV and record the export. Returns {"content", "file_name", "count"}."""
    entity_type = EntityType(entity_type)

    if entity_type == EntityType.REPRESENTATIVES and rows:
        now = now_iso()
        for row in rows:
            await db.user_exports.update_one(
                {"user_id": user_id, "representative_id": row["id"]},
                {"$set": {"exported_at": now},
                 "$setOnInsert": {"id": new_id(), "user_id": user_id, "representative_id": row["id"]}},
                upsert=True,
            )

    content = build_csv([flatten_for_export(entity_type, r) for r in rows], fields)
    file_name = export_filename(entity_type)

    await log_export(db, user_id, entity_type.value, len(rows), file_name, purpose, filters)
    await log_audit(db, user_id, "csv_export", entity_type.value, None, None, {
        "export_count": len(rows),
        "purpose": purpose,
        "fields": fields,
        "filters_used": filters or {},
    })
    logger.info(f"[CSV_EXPORT] {entity_type.value}: {len(rows)} rows by {user_id}")

    return {"content": content, "file_name": file_name, "count": len(rows)}


# ==================== TEMPLATES ====================

async def list_templates(db, template_type: str) -> List[dict]:
    return await db.csv_templates.find({"template_type": template_type}, {"_id": 0}) \
        .sort("created_at", -1) \
        .to_list(200)


async def save_template(db, data: dict, user_id: str) -> dict:
    template = {"id": new_id(), **data, "created_by": user_id, "created_at": now_iso()}
    await db.csv_templates.insert_one(template)
    template.pop("_id", None)
    return template


async def delete_template(db, template_id: str) -> bool:
    result = await db.csv_templates.delete_one({"id": template_id})
    return result.deleted_count > 0
