"""File operations shared by the API and share-link routes.

Every read resolves the requested id to its lineage head and checks the head's
policy. Every mutation is owner-only and publishes a change event after it
commits.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, delete as sql_delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fileshare.models.file_record import FileRecord
from fileshare.models.tag import FileTag
from fileshare.services import notifier as events
from fileshare.services.download_accounting import (
    FileRecordNotFound,
    count_user_downloads,
    record_download,
)
from fileshare.services.file_storage import ObjectStorage, StorageError, key_belongs_to
from fileshare.services.lineage import LineageResolver
from fileshare.services.listing import load_all_files, load_tags_for, serialize_file
from fileshare.services.notifier import ChangeNotifier
from fileshare.services.policy import (
    AccessRequest,
    Decision,
    RequestContext,
    can_access,
    privacy_decision,
)
from fileshare.services.tagging import attach_tags, get_file_tags, normalize_tags

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {
    "name", "category", "is_private", "pin", "expires_at",
    "max_downloads", "max_downloads_per_user",
}
# Explicit nulls clear optional policy fields but never these
_REQUIRED_FIELDS = {"name", "is_private"}


class AccessDenied(Exception):
    """Raised when the lineage head's policy refuses the request."""

    def __init__(self, decision: Decision):
        super().__init__(decision.value)
        self.decision = decision


class NotOwner(Exception):
    """Raised when a non-owner attempts an owner-only mutation."""
    pass


class InvalidFileRequest(Exception):
    """Raised for metadata that cannot be stored (bad parent, unreachable policy)."""
    pass


class DuplicateFile(Exception):
    """Raised when a client-supplied id is already taken."""
    pass


def broadcast_payload(record: FileRecord) -> dict:
    """Event payload for a record. Private records only announce their id."""
    if record.is_private:
        return {"id": record.id, "is_private": True}
    return serialize_file(record)


# ── Reads ────────────────────────────────────────────────────────

async def resolve_for_request(db: AsyncSession, file_id: str) -> tuple[FileRecord, FileRecord, LineageResolver]:
    """Return (requested record, lineage head, resolver) for ``file_id``."""
    resolver = LineageResolver(await load_all_files(db))
    requested = resolver.get(file_id)
    if requested is None:
        raise FileRecordNotFound(file_id)
    return requested, resolver.head_of(file_id), resolver


async def authorize(
    db: AsyncSession,
    file_id: str,
    context: RequestContext,
    pin: Optional[str] = None,
    is_preview: bool = False,
    now: Optional[datetime] = None,
) -> tuple[FileRecord, FileRecord]:
    """Check the head's policy for a download or preview of ``file_id``."""
    requested, head, resolver = await resolve_for_request(db, file_id)

    # Counters sit on each version; the head's limits cover all of them
    members = resolver.members(file_id)
    lineage_download_count = sum(m.download_count or 0 for m in members)
    user_download_count = 0
    if not is_preview and head.max_downloads_per_user is not None and context.is_authenticated:
        user_download_count = await count_user_downloads(
            db, [m.id for m in members], context.user_id
        )

    decision = can_access(
        head,
        AccessRequest(
            context=context,
            pin=pin,
            is_preview=is_preview,
            user_download_count=user_download_count,
            lineage_download_count=lineage_download_count,
            now=now,
        ),
    )
    if not decision.is_granted:
        logger.info(f"Access to {file_id} (head {head.id}) refused: {decision.value}")
        raise AccessDenied(decision)
    return requested, head


async def download(
    db: AsyncSession,
    storage: ObjectStorage,
    notifier: ChangeNotifier,
    file_id: str,
    context: RequestContext,
    pin: Optional[str] = None,
    ip_address: Optional[str] = None,
    is_preview: bool = False,
) -> str:
    """Authorize, count and return a signed URL for the requested record's bytes."""
    requested, _ = await authorize(db, file_id, context, pin=pin, is_preview=is_preview)
    if is_preview:
        return await storage.issue_download_capability(requested.key, requested.name, inline=True)

    updated = await record_download(db, requested.id, context.user_id, ip_address)
    notifier.publish(events.UPDATE_FILE, broadcast_payload(updated))
    return await storage.issue_download_capability(updated.key, updated.name, inline=False)


def _check_visible(head: FileRecord, context: RequestContext, pin: Optional[str]) -> None:
    decision = privacy_decision(head, context, pin)
    if not decision.is_granted:
        raise AccessDenied(decision)


async def get_file(
    db: AsyncSession, file_id: str, context: RequestContext, pin: Optional[str] = None
) -> dict:
    """Metadata and tags for one record, if its lineage is visible to the caller."""
    requested, head, _ = await resolve_for_request(db, file_id)
    _check_visible(head, context, pin)
    return serialize_file(
        requested,
        context.user_id,
        tags=await get_file_tags(db, requested.id),
        lineage_private=bool(head.is_private),
    )


async def get_versions(
    db: AsyncSession, file_id: str, context: RequestContext, pin: Optional[str] = None
) -> list[dict]:
    """Every version in the lineage, newest first."""
    _, head, resolver = await resolve_for_request(db, file_id)
    _check_visible(head, context, pin)
    members = resolver.members(file_id)
    tags = await load_tags_for(db, [m.id for m in members])
    return [
        serialize_file(m, context.user_id, tags=tags[m.id], lineage_private=bool(head.is_private))
        for m in members
    ]


# ── Mutations ────────────────────────────────────────────────────

async def _get_owned(db: AsyncSession, file_id: str, context: RequestContext) -> FileRecord:
    record = await db.get(FileRecord, file_id)
    if record is None:
        raise FileRecordNotFound(file_id)
    if not context.owns(record):
        raise NotOwner(file_id)
    return record


async def create_file(
    db: AsyncSession,
    notifier: ChangeNotifier,
    context: RequestContext,
    data: dict,
) -> dict:
    """Store metadata for an object already uploaded to storage."""
    data = dict(data)
    tag_names = data.pop("tags", None) or []

    file_id = data.get("id")
    if not file_id:
        raise InvalidFileRequest("The id issued with the upload URL is required")
    if await db.get(FileRecord, file_id) is not None:
        raise DuplicateFile(file_id)
    # The key must be the one issued for this id, and not already claimed
    if not key_belongs_to(data["key"], file_id):
        raise InvalidFileRequest("Storage key does not belong to this upload")
    claimed = await db.execute(select(FileRecord.id).where(FileRecord.key == data["key"]))
    if claimed.first() is not None:
        raise InvalidFileRequest("Storage key is already in use")

    parent_id = data.get("parent_id")
    if parent_id:
        parent = await db.get(FileRecord, parent_id)
        if parent is None:
            raise InvalidFileRequest("Parent file not found")
        # Only the owner may add versions; anonymous uploads cannot be versioned
        if not context.owns(parent):
            raise NotOwner(parent_id)

    if data.get("is_private") and not data.get("pin") and not context.is_authenticated:
        raise InvalidFileRequest("Anonymous private uploads need a PIN")

    if not data.get("category"):
        data["category"] = "other"

    record = FileRecord(**data, user_id=context.user_id)
    db.add(record)
    await db.commit()
    await db.refresh(record)
    logger.info(f"Stored metadata for {record.id} ({record.size} bytes)")

    tags = await attach_tags(db, record.id, tag_names) if tag_names else []
    notifier.publish(events.NEW_FILE, broadcast_payload(record))
    return serialize_file(record, context.user_id, tags=tags)


async def replace_tags(db: AsyncSession, file_id: str, tag_names: Iterable[str]) -> list[str]:
    """Make the file's tags exactly ``tag_names``."""
    await db.execute(sql_delete(FileTag).where(FileTag.file_id == file_id))
    await db.flush()
    return await attach_tags(db, file_id, normalize_tags(tag_names))


async def update_file(
    db: AsyncSession,
    notifier: ChangeNotifier,
    file_id: str,
    context: RequestContext,
    changes: dict,
) -> dict:
    """Owner update of name, category, policy fields and tags."""
    record = await _get_owned(db, file_id, context)

    for key, value in changes.items():
        if key not in _UPDATABLE_FIELDS:
            continue
        if value is None and key in _REQUIRED_FIELDS:
            continue
        setattr(record, key, value)
    await db.commit()
    await db.refresh(record)

    if "tags" in changes and changes["tags"] is not None:
        tags = await replace_tags(db, file_id, changes["tags"])
    else:
        tags = await get_file_tags(db, file_id)

    notifier.publish(events.UPDATE_FILE, broadcast_payload(record))
    return serialize_file(record, context.user_id, tags=tags)


async def delete_file(
    db: AsyncSession,
    storage: ObjectStorage,
    notifier: ChangeNotifier,
    file_id: str,
    context: RequestContext,
) -> None:
    """Delete the object and its metadata.

    Metadata is removed even when the object delete fails, so the listing never
    points at a record the owner cannot get rid of; the object is left orphaned.
    """
    record = await _get_owned(db, file_id, context)

    try:
        await storage.delete_object(record.key)
    except (StorageError, OSError) as e:
        logger.warning(f"Object delete failed for {file_id} ({record.key}), removing metadata anyway: {e}")

    await db.execute(sql_delete(FileTag).where(FileTag.file_id == file_id))
    await db.delete(record)
    await db.commit()
    logger.info(f"Deleted file {file_id}")
    notifier.publish(events.DELETE_FILE, {"id": file_id})


# ── Bulk ─────────────────────────────────────────────────────────

def _bulk_error(e: Exception) -> str:
    if isinstance(e, FileRecordNotFound):
        return "not_found"
    if isinstance(e, NotOwner):
        return "forbidden"
    return "failed"


async def bulk_delete(
    db: AsyncSession,
    storage: ObjectStorage,
    notifier: ChangeNotifier,
    file_ids: list[str],
    context: RequestContext,
) -> list[dict]:
    """Delete each id independently; one failure never aborts the batch."""
    results = []
    for file_id in file_ids:
        try:
            await delete_file(db, storage, notifier, file_id, context)
            results.append({"id": file_id, "ok": True, "error": None})
        except (FileRecordNotFound, NotOwner, SQLAlchemyError) as e:
            if isinstance(e, SQLAlchemyError):
                await db.rollback()
                logger.error(f"Bulk delete of {file_id} failed: {e}")
            results.append({"id": file_id, "ok": False, "error": _bulk_error(e)})
    return results


async def bulk_tag(
    db: AsyncSession,
    file_ids: list[str],
    tag_names: list[str],
    context: RequestContext,
) -> list[dict]:
    """Attach tags to each id independently."""
    results = []
    for file_id in file_ids:
        try:
            await _get_owned(db, file_id, context)
            await attach_tags(db, file_id, tag_names)
            results.append({"id": file_id, "ok": True, "error": None})
        except (FileRecordNotFound, NotOwner, SQLAlchemyError) as e:
            if isinstance(e, SQLAlchemyError):
                await db.rollback()
                logger.error(f"Bulk tag of {file_id} failed: {e}")
            results.append({"id": file_id, "ok": False, "error": _bulk_error(e)})
    return results
