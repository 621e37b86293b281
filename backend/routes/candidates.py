"""
DCLense - Routes Candidates
Recruitment pipeline: CRUD + CV (PDF) upload / download / delete in GridFS.
Deleting a candidate also deletes its CV.
"""

import re
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, File
from fastapi.responses import Response

from config import get_db, new_id, now_iso
from models import CandidateCreate, CandidateUpdate
from services.audit_logger import log_audit
from services.permissions import require_permission
from services.storage import StorageError, upload_cv, download_cv, delete_cv

logger = logging.getLogger("candidates")

router = APIRouter(prefix="/candidates", tags=["Candidates"])

SEARCH_FIELDS = ("first_name", "last_name", "email", "title", "skills", "current_company")


async def _get_candidate(db, candidate_id: str) -> dict:
    candidate = await db.candidates.find_one({"id": candidate_id}, {"_id": 0})
    if not candidate:
        raise HTTPException(status_code=404, detail="Candidate not found")
    return candidate


@router.get("")
async def list_candidates(
    search: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    user: dict = Depends(require_permission("candidates.manage")),
    db=Depends(get_db),
):
    query = {}
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        query["$or"] = [{field: pattern} for field in SEARCH_FIELDS]
    if status:
        query["status"] = status

    total = await db.candidates.count_documents(query)
    rows = await db.candidates.find(query, {"_id": 0}).sort("created_at", -1) \
        .skip((page - 1) * page_size).limit(page_size).to_list(page_size)

    return {"rows": rows, "total": total, "page": page, "page_size": page_size}


@router.get("/{candidate_id}")
async def get_candidate(
    candidate_id: str,
    user: dict = Depends(require_permission("candidates.manage")),
    db=Depends(get_db),
):
    return await _get_candidate(db, candidate_id)


@router.post("")
async def create_candidate(
    data: CandidateCreate,
    user: dict = Depends(require_permission("candidates.manage")),
    db=Depends(get_db),
):
    candidate_id = new_id()
    now = now_iso()
    candidate = {
        "_id": candidate_id,
        "id": candidate_id,
        **data.model_dump(),
        "cv_file_id": None,
        "cv_file_name": None,
        "created_by": user["id"],
        "created_at": now,
        "updated_at": now,
    }
    if not candidate.get("user_date_added"):
        candidate["user_date_added"] = now

    await db.candidates.insert_one(candidate)
    candidate.pop("_id", None)

    await log_audit(db, user["id"], "create", "candidates", candidate_id, None, candidate)
    return {"success": True, "candidate": candidate}


@router.put("/{candidate_id}")
async def update_candidate(
    candidate_id: str,
    data: CandidateUpdate,
    user: dict = Depends(require_permission("candidates.manage")),
    db=Depends(get_db),
):
    old = await _get_candidate(db, candidate_id)

    changes = data.model_dump(exclude_unset=True)
    changes["updated_at"] = now_iso()
    await db.candidates.update_one({"id": candidate_id}, {"$set": changes})

    new = {**old, **changes}
    await log_audit(db, user["id"], "update", "candidates", candidate_id, old, new)
    return {"success": True, "candidate": new}


@router.delete("/{candidate_id}")
async def remove_candidate(
    candidate_id: str,
    user: dict = Depends(require_permission("candidates.manage")),
    db=Depends(get_db),
):
    candidate = await _get_candidate(db, candidate_id)

    cv_deleted = False
    if candidate.get("cv_file_id"):
        try:
            cv_deleted = await delete_cv(db, candidate["cv_file_id"])
        except Exception as e:
            # the candidate is removed even if storage fails
            logger.error(f"[CANDIDATES] CV delete failed for {candidate_id}: {str(e)}")

    await db.candidates.delete_one({"id": candidate_id})
    await log_audit(db, user["id"], "delete", "candidates", candidate_id, candidate, None)
    return {"success": True, "cv_deleted": cv_deleted}


# ==================== CV ====================

@router.post("/{candidate_id}/cv")
async def upload_candidate_cv(
    candidate_id: str,
    cv: UploadFile = File(...),
    user: dict = Depends(require_permission("candidates.manage")),
    db=Depends(get_db),
):
    candidate = await _get_candidate(db, candidate_id)

    try:
        stored = await upload_cv(db, cv.filename, await cv.read(), cv.content_type)
    except StorageError as e:
        raise HTTPException(status_code=400, detail=str(e))

    # replaces any previous CV
    if candidate.get("cv_file_id"):
        await delete_cv(db, candidate["cv_file_id"])

    changes = {"cv_file_id": stored["file_id"], "cv_file_name": stored["file_name"], "updated_at": now_iso()}
    await db.candidates.update_one({"id": candidate_id}, {"$set": changes})
    await log_audit(db, user["id"], "upload_cv", "candidates", candidate_id,
                    {"cv_file_id": candidate.get("cv_file_id")}, changes)

    return {"success": True, **stored}


@router.get("/{candidate_id}/cv")
async def download_candidate_cv(
    candidate_id: str,
    user: dict = Depends(require_permission("candidates.manage")),
    db=Depends(get_db),
):
    candidate = await _get_candidate(db, candidate_id)
    found = await download_cv(db, candidate.get("cv_file_id"))
    if not found:
        raise HTTPException(status_code=404, detail="CV not found")

    file_name, content_type, data = found
    return Response(
        content=data,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'}
    )


@router.delete("/{candidate_id}/cv")
async def delete_candidate_cv(
    candidate_id: str,
    user: dict = Depends(require_permission("candidates.manage")),
    db=Depends(get_db),
):
    candidate = await _get_candidate(db, candidate_id)
    if not candidate.get("cv_file_id"):
        raise HTTPException(status_code=404, detail="Candidate has no CV")

    await delete_cv(db, candidate["cv_file_id"])

    changes = {"cv_file_id": None, "cv_file_name": None, "updated_at": now_iso()}
    await db.candidates.update_one({"id": candidate_id}, {"$set": changes})
    await log_audit(db, user["id"], "delete_cv", "candidates", candidate_id,
                    {"cv_file_id": candidate["cv_file_id"]}, changes)

    return {"success": True, "candidate": {**candidate, **changes}}
