"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  DCLense - Routes Representatives                                            ║
║                                                                              ║
║  List (filtered, paginated, per-user read status), CRUD, bulk actions        ║
║  full_name is derived from first_name + last_name on every write.            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import ValidationError

from config import get_db, PAGE_SIZE_DEFAULT
from models import (
    EntityType,
    RepresentativeCreate,
    RepresentativeUpdate,
    BulkIds,
    BulkAssign,
    ReadStatusUpdate,
    BulkReadStatusUpdate,
    parse_query_filters,
)
from routes.auth import get_current_user
from services.queries import fetch_page, enrich_rows
from services.records import get_record, create_record, update_record, soft_delete, assign
from services.user_reads import apply_read_overrides, set_read_status, bulk_set_read_status, mark_as_read

router = APIRouter(prefix="/representatives", tags=["Representatives"])

ENTITY = EntityType.REPRESENTATIVES


async def _check_company(db, company_id):
    if company_id and not await get_record(db, EntityType.COMPANIES, company_id):
        raise HTTPException(status_code=400, detail="Unknown company_id")


@router.get("")
async def list_representatives(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(PAGE_SIZE_DEFAULT, ge=1, le=500),
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    """
    Filters come as query parameters (company_ids / contacted_by may repeat or be comma separated):
    search, company_ids, company_id, assigned_to, status, contacted_by, unread_filter,
    exported_filter, rep_position, created_from, created_to, sort_field, sort_order
    """
    try:
        filters = parse_query_filters(ENTITY, request.query_params)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    return await fetch_page(db, ENTITY, filters, page, page_size, user["id"])


@router.get("/{representative_id}")
async def get_representative(representative_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    representative = await get_record(db, ENTITY, representative_id)
    if not representative:
        raise HTTPException(status_code=404, detail="Representative not found")

    await mark_as_read(db, user["id"], ENTITY, representative_id)

    rows = await enrich_rows(db, ENTITY, [representative])
    rows = await apply_read_overrides(db, user["id"], ENTITY, rows)
    return rows[0]


@router.post("")
async def create_representative(
    data: RepresentativeCreate,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    await _check_company(db, data.company_id)
    representative = await create_record(db, ENTITY, data.model_dump(), user["id"])
    return {"success": True, "representative": representative}


@router.put("/{representative_id}")
async def update_representative(
    representative_id: str,
    data: RepresentativeUpdate,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No field to update")
    await _check_company(db, changes.get("company_id"))

    representative = await update_record(db, ENTITY, representative_id, changes, user["id"])
    if not representative:
        raise HTTPException(status_code=404, detail="Representative not found")
    return {"success": True, "representative": representative}


@router.delete("/{representative_id}")
async def delete_representative(representative_id: str, user: dict = Depends(get_current_user), db=Depends(get_db)):
    deleted = await soft_delete(db, ENTITY, [representative_id], user["id"])
    if not deleted:
        raise HTTPException(status_code=404, detail="Representative not found")
    return {"success": True}


@router.post("/{representative_id}/assign-to-me")
async def assign_representative_to_me(
    representative_id: str,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    updated = await assign(db, ENTITY, [representative_id], user["id"], user["id"], action="update")
    if not updated:
        raise HTTPException(status_code=404, detail="Representative not found")
    return {"success": True, "representative": updated[0]}


# ==================== BULK ====================

@router.post("/bulk-delete")
async def bulk_delete_representatives(data: BulkIds, user: dict = Depends(get_current_user), db=Depends(get_db)):
    deleted = await soft_delete(db, ENTITY, data.ids, user["id"], action="bulk_delete")
    return {"success": True, "deleted": deleted}


@router.post("/bulk-assign-to-me")
async def bulk_assign_representatives_to_me(
    data: BulkIds,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    updated = await assign(db, ENTITY, data.ids, user["id"], user["id"])
    return {"success": True, "updated": len(updated)}


@router.post("/bulk-assign")
async def bulk_assign_representatives(
    data: BulkAssign,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    if data.assigned_to:
        target = await db.users.find_one({"id": data.assigned_to}, {"_id": 0, "id": 1})
        if not target:
            raise HTTPException(status_code=400, detail="Unknown user")
    updated = await assign(db, ENTITY, data.ids, data.assigned_to, user["id"])
    return {"success": True, "updated": len(updated)}


# ==================== READ STATUS (per user) ====================

@router.put("/{representative_id}/read-status")
async def set_representative_read_status(
    representative_id: str,
    data: ReadStatusUpdate,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    return await set_read_status(db, user["id"], ENTITY, representative_id, data.mark_unread)


@router.post("/bulk-read-status")
async def bulk_set_representatives_read_status(
    data: BulkReadStatusUpdate,
    user: dict = Depends(get_current_user),
    db=Depends(get_db),
):
    return await bulk_set_read_status(db, user["id"], ENTITY, data.ids, data.mark_unread)
