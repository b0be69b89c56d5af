"""Files API routes."""
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from fileshare.database import get_db
from fileshare.identity import client_ip, get_request_context
from fileshare.routes.errors import FILE_ERRORS, http_error
from fileshare.schemas.common import DeleteResponse
from fileshare.schemas.file import (
    BulkDeleteRequest,
    BulkResult,
    BulkTagRequest,
    FileCreate,
    FileResponse,
    FileUpdate,
    StorageUsageResponse,
    UploadUrlRequest,
    UploadUrlResponse,
)
from fileshare.services import file_access
from fileshare.services.file_storage import ObjectStorage, build_key, get_object_storage
from fileshare.services.listing import (
    list_owned,
    list_visible,
    load_all_files,
    load_owned_files,
    storage_usage,
)
from fileshare.services.notifier import ChangeNotifier, get_notifier
from fileshare.services.policy import RequestContext

router = APIRouter(prefix="/api/files", tags=["files"])
upload_router = APIRouter(prefix="/api", tags=["files"])


def _require_user(ctx: RequestContext) -> str:
    if not ctx.is_authenticated:
        raise HTTPException(401, "Authentication required")
    return ctx.user_id


@upload_router.post("/upload-url", response_model=UploadUrlResponse)
async def create_upload_url(
    body: UploadUrlRequest,
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Issue a URL the client uploads bytes to directly."""
    file_id = str(uuid.uuid4())
    key = build_key(file_id, body.filename)
    try:
        url = await storage.issue_upload_capability(key, body.type)
    except FILE_ERRORS as e:
        raise http_error(e)
    return {"url": url, "key": key, "id": file_id}


@router.get("", response_model=list[FileResponse])
async def list_files(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Latest version of every lineage the caller may see, newest first."""
    return list_visible(await load_all_files(db), ctx.user_id)


@router.get("/mine", response_model=list[FileResponse])
async def list_my_files(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """The caller's own lineages, PINs included."""
    user_id = _require_user(ctx)
    return list_owned(await load_owned_files(db, user_id), user_id)


@router.get("/usage", response_model=StorageUsageResponse)
async def get_storage_usage(
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Total bytes stored by the caller."""
    user_id = _require_user(ctx)
    return {"total_bytes": await storage_usage(db, user_id)}


@router.post("", response_model=FileResponse, status_code=201)
async def create_file(
    body: FileCreate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Save metadata for a file uploaded directly to storage."""
    try:
        return await file_access.create_file(db, notifier, ctx, body.model_dump())
    except FILE_ERRORS as e:
        raise http_error(e)


@router.post("/bulk-delete", response_model=list[BulkResult])
async def bulk_delete_files(
    body: BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    storage: ObjectStorage = Depends(get_object_storage),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Delete several files. Each id reports its own outcome."""
    _require_user(ctx)
    return await file_access.bulk_delete(db, storage, notifier, body.ids, ctx)


@router.post("/bulk-tags", response_model=list[BulkResult])
async def bulk_tag_files(
    body: BulkTagRequest,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Attach tags to several files. Each id reports its own outcome."""
    _require_user(ctx)
    return await file_access.bulk_tag(db, body.ids, body.tags, ctx)


@router.get("/{file_id}", response_model=FileResponse)
async def get_file_metadata(
    file_id: str,
    pin: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Get file metadata and tags by ID."""
    try:
        return await file_access.get_file(db, file_id, ctx, pin)
    except FILE_ERRORS as e:
        raise http_error(e)


@router.get("/{file_id}/versions", response_model=list[FileResponse])
async def get_file_versions(
    file_id: str,
    pin: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
):
    """Version history of the file's lineage, newest first."""
    try:
        return await file_access.get_versions(db, file_id, ctx, pin)
    except FILE_ERRORS as e:
        raise http_error(e)


@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    request: Request,
    pin: Optional[str] = Query(None),
    preview: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    storage: ObjectStorage = Depends(get_object_storage),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Check access, count the download and redirect to a signed URL."""
    try:
        url = await file_access.download(
            db, storage, notifier, file_id, ctx,
            pin=pin, ip_address=client_ip(request), is_preview=preview,
        )
    except FILE_ERRORS as e:
        raise http_error(e)
    return RedirectResponse(url, status_code=302)


@router.patch("/{file_id}", response_model=FileResponse)
async def update_file(
    file_id: str,
    body: FileUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Update a file. Only provided fields are updated."""
    _require_user(ctx)
    try:
        return await file_access.update_file(
            db, notifier, file_id, ctx, body.model_dump(exclude_unset=True)
        )
    except FILE_ERRORS as e:
        raise http_error(e)


@router.delete("/{file_id}", response_model=DeleteResponse)
async def delete_file(
    file_id: str,
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    storage: ObjectStorage = Depends(get_object_storage),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Delete a file's object and its record."""
    _require_user(ctx)
    try:
        await file_access.delete_file(db, storage, notifier, file_id, ctx)
    except FILE_ERRORS as e:
        raise http_error(e)
    return {"deleted": True, "id": file_id}
