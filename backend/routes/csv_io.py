"""
DCLense - Routes CSV
Parse / templates / import-modify / export (text/csv download)
"""

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from fastapi.responses import Response
from pydantic import ValidationError

from config import get_db
from models import EntityType, CSVTemplateCreate, CSVImportRequest, CSVExportRequest, parse_filters
from services.csv_io import (
    IMPORTERS,
    COMPANY_IMPORT_FIELDS,
    REPRESENTATIVE_IMPORT_FIELDS,
    parse_csv,
    export_rows,
    list_templates,
    save_template,
    delete_template,
)
from services.permissions import require_permission
from services.queries import fetch_all

router = APIRouter(prefix="/csv", tags=["CSV"])

IMPORT_FIELDS = {
    EntityType.COMPANIES: COMPANY_IMPORT_FIELDS,
    EntityType.REPRESENTATIVES: ["company_name"] + REPRESENTATIVE_IMPORT_FIELDS,
}


@router.get("/fields/{entity_type}")
async def get_import_fields(entity_type: EntityType, user: dict = Depends(require_permission("csv.import"))):
    """Target fields offered in the column mapping step"""
    return {"fields": IMPORT_FIELDS[entity_type]}


@router.post("/parse")
async def parse_upload(file: UploadFile = File(...), user: dict = Depends(require_permission("csv.import"))):
    raw = await file.read()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        text = raw.decode("latin-1")
    return parse_csv(text)


@router.post("/import")
async def import_rows(
    data: CSVImportRequest,
    user: dict = Depends(require_permission("csv.import")),
    db=Depends(get_db),
):
    if not data.rows:
        raise HTTPException(status_code=400, detail="No rows to import")
    importer = IMPORTERS[(data.entity_type, data.mode)]
    result = await importer(db, data.rows, user["id"])
    return {"success": True, **result}


@router.post("/export")
async def export_csv(
    data: CSVExportRequest,
    user: dict = Depends(require_permission("csv.export")),
    db=Depends(get_db),
):
    try:
        filters = parse_filters(data.entity_type, data.filters)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    rows = await fetch_all(db, data.entity_type, filters, user["id"])
    export = await export_rows(
        db, data.entity_type, rows, data.fields, user["id"],
        purpose=data.purpose, filters=filters.active(),
    )

    return Response(
        content=export["content"].encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{export["file_name"]}"',
            "X-Record-Count": str(export["count"]),
        }
    )


# ==================== TEMPLATES ====================

@router.get("/templates")
async def get_templates(
    template_type: EntityType = Query(...),
    user: dict = Depends(require_permission("csv.import")),
    db=Depends(get_db),
):
    return {"templates": await list_templates(db, template_type.value)}


@router.post("/templates")
async def create_template(
    data: CSVTemplateCreate,
    user: dict = Depends(require_permission("csv.import")),
    db=Depends(get_db),
):
    template = await save_template(db, data.model_dump(), user["id"])
    return {"success": True, "template": template}


@router.delete("/templates/{template_id}")
async def remove_template(
    template_id: str,
    user: dict = Depends(require_permission("csv.import")),
    db=Depends(get_db),
):
    if not await delete_template(db, template_id):
        raise HTTPException(status_code=404, detail="Template not found")
    return {"success": True}
