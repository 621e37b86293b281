"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Routes Companies                                                  ║
║                                                                              ║
║  List (filtered, paginated, per-user read status), CRUD, bulk actions        ║
║  Delete = soft delete. Every mutation is audited (services/records.py).      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from config import get_db, PAGE_SIZE_DEFAULT
from models import (
    EntityType,
    CompanyCreate,
    CompanyUpdate,
    BulkIds,
    ReadStatusUpdate,
    BulkReadStatusUpdate,
    parse_query_filters,
)
from routes.auth import get_current_user
from services.queries import fetch_page, enrich_rows
from services.records import (
    DuplicateCompanyError,
    get_record,
    create_record,
    update_record,
    soft_delete,
    assign,
)
from services.user_reads import apply_read_overrides, set_read_status, bulk_set_read_status, mark_as_read

router = APIRouter(prefix="/companies", tags=["Companies"])

ENTITY = EntityType.COMPANIES


@router.get("")
async def list_companies(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(PAGE_SIZE_DEFAULT, ge=1, le=500),
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    """
    Filters come as query parameters:
    search, status, assigned_to, unread_filter, created_from, created_to, sort_field, sort_order
    """
    try:
        filters = parse_query_filters(ENTITY, request.query_params)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    return await fetch_page(db, ENTITY, filters, page, page_size, user["id"])


@router.get("/{company_id}")
async def get_company(company_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    """Company with its representatives. Opening a company marks it read for the caller."""
    company = await get_record(db, ENTITY, company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")

    await mark_as_read(db, user["id"], ENTITY, company_id)

    representatives = await db.representatives.find(
        {"company_id": company_id, "is_deleted": {"$ne": True}}, {"_id": 0}
    ).sort("created_at", 1).to_list(None)

    rows = await enrich_rows(db, ENTITY, [company])
    rows = await apply_read_overrides(db, user["id"], ENTITY, rows)
    return {**rows[0], "representatives": representatives}


@router.post("")
async def create_company(data: CompanyCreate, user: dict = Depends(get_current_user), db=Depends(get_db)):
    try:
        company = await create_record(db, ENTITY, data.model_dump(), user["id"])
    except DuplicateCompanyError:
        raise HTTPException(status_code=409, detail=f"A company named '{data.company_name}' already exists")
    return {"success": True, "company": company}


@router.put("/{company_id}")
async def update_company(
    company_id: str,
    data: CompanyUpdate,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No field to update")

    try:
        company = await update_record(db, ENTITY, company_id, changes, user["id"])
    except DuplicateCompanyError:
        raise HTTPException(status_code=409, detail=f"A company named '{data.company_name}' already exists")

    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return {"success": True, "company": company}


@router.delete("/{company_id}")
async def delete_company(company_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    deleted = await soft_delete(db, ENTITY, [company_id], user["id"])
    if not deleted:
        raise HTTPException(status_code=404, detail="Company not found")
    return {"success": True}


# ==================== BULK ====================

@router.post("/bulk-delete")
async def bulk_delete_companies(data: BulkIds, user: dict = Depends(get_current_user), db=Depends(get_db)):
    deleted = await soft_delete(db, ENTITY, data.ids, user["id"], action="bulk_delete")
    return {"success": True, "deleted": deleted}


@router.post("/bulk-assign-to-me")
async def bulk_assign_companies_to_me(data: BulkIds, user: dict = Depends(get_current_user), db=Depends(get_db)):
    updated = await assign(db, ENTITY, data.ids, user["id"], user["id"])
    return {"success": True, "updated": len(updated)}


# ==================== READ STATUS (per user) ====================

@router.put("/{company_id}/read-status")
async def set_company_read_status(
    company_id: str,
    data: ReadStatusUpdate,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    return await set_read_status(db, user["id"], ENTITY, company_id, data.mark_unread)


@router.post("/bulk-read-status")
async def bulk_set_companies_read_status(
    data: BulkReadStatusUpdate,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    return await bulk_set_read_status(db, user["id"], ENTITY, data.ids, data.mark_unread)
