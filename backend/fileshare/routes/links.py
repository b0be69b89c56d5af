"""Short share links: /link/{id} and /link/{id}/{filename}."""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from fileshare.database import get_db
from fileshare.identity import client_ip, get_request_context
from fileshare.routes.errors import FILE_ERRORS, http_error
from fileshare.services import file_access
from fileshare.services.file_storage import ObjectStorage, get_object_storage
from fileshare.services.notifier import ChangeNotifier, get_notifier
from fileshare.services.policy import RequestContext

router = APIRouter(prefix="/link", tags=["links"])


async def _follow_link(
    file_id: str,
    request: Request,
    pin: Optional[str],
    db: AsyncSession,
    ctx: RequestContext,
    storage: ObjectStorage,
    notifier: ChangeNotifier,
) -> RedirectResponse:
    try:
        url = await file_access.download(
            db, storage, notifier, file_id, ctx, pin=pin, ip_address=client_ip(request)
        )
    except FILE_ERRORS as e:
        raise http_error(e)
    return RedirectResponse(url, status_code=302)


@router.get("/{file_id}")
async def follow_link(
    file_id: str,
    request: Request,
    pin: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    storage: ObjectStorage = Depends(get_object_storage),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Direct download through a share link."""
    return await _follow_link(file_id, request, pin, db, ctx, storage, notifier)


@router.get("/{file_id}/{filename}")
async def follow_named_link(
    file_id: str,
    filename: str,
    request: Request,
    pin: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    storage: ObjectStorage = Depends(get_object_storage),
    notifier: ChangeNotifier = Depends(get_notifier),
):
    """Same as /link/{id}; the filename segment is cosmetic."""
    return await _follow_link(file_id, request, pin, db, ctx, storage, notifier)
