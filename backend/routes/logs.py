"""
DCLense - Routes Logs (admin)
Audit logs / System logs / Export logs, paginated and filterable.
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from config import get_db
from services.audit_logger import get_audit_logs, get_system_logs, get_export_logs
from services.permissions import require_permission

router = APIRouter(prefix="/logs", tags=["Logs"])


@router.get("/audit")
async def list_audit_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    table_name: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user: dict = Depends(require_permission("logs.view")),
    db=Depends(get_db),
):
    return await get_audit_logs(db, page, limit, user_id, action, table_name, date_from, date_to)


@router.get("/system")
async def list_system_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user: dict = Depends(require_permission("logs.view")),
    db=Depends(get_db),
):
    return await get_system_logs(db, page, limit, user_id, action, date_from, date_to)


@router.get("/exports")
async def list_export_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user_id: Optional[str] = None,
    export_type: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    user: dict = Depends(require_permission("logs.view")),
    db=Depends(get_db),
):
    return await get_export_logs(db, page, limit, user_id, export_type, date_from, date_to)
