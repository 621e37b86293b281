"""
DCLense - File storage (GridFS)
CV files for candidates, bucket "cv". Files are addressed by their GridFS id (string).
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorGridFSBucket

logger = logging.getLogger("storage")

CV_BUCKET = "cv"
MAX_CV_BYTES = 10 * 1024 * 1024


class StorageError(Exception):
    pass


def _bucket(db, bucket_name: str = CV_BUCKET) -> AsyncIOMotorGridFSBucket:
    return AsyncIOMotorGridFSBucket(db, bucket_name=bucket_name)


def _object_id(file_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(file_id)
    except (InvalidId, TypeError):
        return None


def is_pdf(filename: str, content_type: Optional[str]) -> bool:
    if content_type and "pdf" in content_type.lower():
        return True
    return bool(filename) and filename.lower().endswith(".pdf")


def storage_filename(original: str, now: datetime = None) -> str:
    """<timestamp-ms>_<original name>"""
    now = now or datetime.now(timezone.utc)
    safe = (original or "cv.pdf").replace("/", "_").replace("\\", "_")
    return f"{int(now.timestamp() * 1000)}_{safe}"


async def upload_cv(db, filename: str, data: bytes, content_type: str = "application/pdf") -> dict:
    if not data:
        raise StorageError("Empty file")
    if len(data) > MAX_CV_BYTES:
        raise StorageError("File too large")
    if not is_pdf(filename, content_type):
        raise StorageError("Only PDF files are allowed")

    name = storage_filename(filename)
    file_id = await _bucket(db).upload_from_stream(
        name, data, metadata={"content_type": content_type or "application/pdf", "original_name": filename}
    )
    logger.info(f"[STORAGE] CV stored: {name} ({len(data)} bytes)")
    return {"file_id": str(file_id), "file_name": name, "size": len(data)}


async def download_cv(db, file_id: str) -> Optional[Tuple[str, str, bytes]]:
    """(file_name, content_type, data) or None when missing"""
    oid = _object_id(file_id)
    if oid is None:
        return None
    try:
        stream = await _bucket(db).open_download_stream(oid)
    except NoFile:
        return None
    data = await stream.read()
    metadata = stream.metadata or {}
    return stream.filename, metadata.get("content_type", "application/pdf"), data


async def delete_cv(db, file_id: Optional[str]) -> bool:
    """False when there was nothing to delete"""
    oid = _object_id(file_id) if file_id else None
    if oid is None:
        return False
    try:
        await _bucket(db).delete(oid)
    except NoFile:
        logger.warning(f"[STORAGE] CV {file_id} already gone")
        return False
    logger.info(f"[STORAGE] CV deleted: {file_id}")
    return True
