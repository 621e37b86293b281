"""
DCLense - Routes Statistics / Dashboard
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from config import get_db
from routes.auth import get_current_user
from services.permissions import require_permission
from services.statistics import (
    DATE_RANGES,
    get_contact_method_stats,
    get_agent_stats,
    get_creation_stats,
    get_dashboard_counts,
)

router = APIRouter(prefix="/stats", tags=["Statistics"])


def _check_range(date_range: str):
    if date_range not in DATE_RANGES:
        raise HTTPException(status_code=400, detail=f"Invalid date_range. Valid: {list(DATE_RANGES)}")


@router.get("/dashboard")
async def dashboard_counts(user: dict = Depends(get_current_user), db=Depends(get_db)):
    """Totals + unread counts as seen by the caller"""
    return await get_dashboard_counts(db, user["id"])


@router.get("/contact-methods")
async def contact_method_stats(
    date_range: str = Query("30"),
    user: dict = Depends(require_permission("stats.view")),
    db=Depends(get_db),
):
    _check_range(date_range)
    return {"date_range": date_range, "stats": await get_contact_method_stats(db, date_range)}


@router.get("/agents")
async def agent_stats(
    date_range: str = Query("30"),
    agent: str = Query("all"),
    user: dict = Depends(require_permission("stats.view")),
    db=Depends(get_db),
):
    _check_range(date_range)
    return {"date_range": date_range, "stats": await get_agent_stats(db, date_range, agent)}


@router.get("/creations")
async def creation_stats(
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    user: dict = Depends(require_permission("stats.view")),
    db=Depends(get_db),
):
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be before end_date")
    try:
        return await get_creation_stats(db, start_date, end_date)
    except ValueError:
        raise HTTPException(status_code=400, detail="Dates must be YYYY-MM-DD")
