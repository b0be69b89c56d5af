"""Local object storage endpoints.

Active only when FILE_STORAGE_TYPE is "local", where they stand in for
S3 presigned URLs during development. Every request must carry the token
issued by ObjectStorage for that method and key.
"""
import logging
import mimetypes
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse

from fileshare.services.file_storage import ObjectStorage, StorageError, get_object_storage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/storage", tags=["storage"])


def _local(storage: ObjectStorage) -> ObjectStorage:
    if storage.storage_type != "local":
        raise HTTPException(404, "Not found")
    return storage


@router.put("/{key:path}", status_code=204)
async def put_object(
    key: str,
    request: Request,
    token: str = Query(...),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Receive the bytes for an issued upload URL."""
    storage = _local(storage)
    if storage.verify(token, "PUT", key) is None:
        raise HTTPException(403, "Invalid or expired upload URL")
    try:
        await storage.write_local(key, await request.body())
    except StorageError:
        raise HTTPException(400, "Invalid storage key")
    logger.info(f"Stored object {key}")


@router.get("/{key:path}")
async def get_object(
    key: str,
    token: str = Query(...),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Serve the bytes for an issued download URL."""
    storage = _local(storage)
    claims = storage.verify(token, "GET", key)
    if claims is None:
        raise HTTPException(403, "Invalid or expired download URL")
    disposition = claims.get("disposition", "attachment")
    try:
        path = storage.local_path(key)
    except StorageError:
        raise HTTPException(400, "Invalid storage key")
    if not path.is_file():
        raise HTTPException(404, "Object not found")
    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(path, media_type=media_type, headers={"Content-Disposition": disposition})
