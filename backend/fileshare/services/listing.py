"""File listings grouped by lineage.

Lists show one entry per lineage (its head). Older versions stay reachable
through the versions endpoint. A PIN or storage key is only ever returned
to the record's owner.
"""
from typing import Iterable, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from fileshare.models.file_record import FileRecord
from fileshare.models.tag import Tag, FileTag
from fileshare.services.lineage import LineageResolver, created_at_key


def serialize_file(
    record: FileRecord,
    viewer_id: Optional[str] = None,
    tags: Optional[list[str]] = None,
    lineage_private: bool = False,
) -> dict:
    """Convert a record to a response dict for ``viewer_id``.

    Non-owners never see the PIN or the storage key, and never see who owns a
    private record (or any version of a lineage whose head is private).
    """
    is_owner = viewer_id is not None and record.user_id == viewer_id
    hide_owner = not is_owner and (bool(record.is_private) or lineage_private)
    data = {
        "id": record.id,
        "user_id": None if hide_owner else record.user_id,
        "name": record.name,
        "key": record.key if is_owner else None,
        "type": record.type,
        "size": record.size,
        "category": record.category,
        "parent_id": record.parent_id,
        "is_private": bool(record.is_private),
        "pin": record.pin if is_owner else None,
        "has_pin": bool(record.pin),
        "expires_at": record.expires_at,
        "max_downloads": record.max_downloads,
        "max_downloads_per_user": record.max_downloads_per_user,
        "download_count": record.download_count or 0,
        "created_at": record.created_at,
    }
    if tags is not None:
        data["tags"] = tags
    return data


def _newest_first(records: Iterable[FileRecord]) -> list[FileRecord]:
    return sorted(records, key=created_at_key, reverse=True)


def is_visible_to(head: FileRecord, requester_id: Optional[str]) -> bool:
    """A lineage is listed when its head is public or owned by the requester."""
    if not head.is_private:
        return True
    return requester_id is not None and head.user_id == requester_id


def list_visible(all_records: Iterable[FileRecord], requester_id: Optional[str] = None) -> list[dict]:
    """Lineage heads the requester may see, newest first, PINs sanitized.

    Lineages are resolved over every record before filtering, so a lineage
    whose newest version is private disappears from other users' lists even
    when its older versions are public.
    """
    resolver = LineageResolver(all_records)
    heads = [h for h in resolver.heads() if is_visible_to(h, requester_id)]
    return [serialize_file(h, requester_id) for h in _newest_first(heads)]


def list_owned(all_records: Iterable[FileRecord], owner_id: str) -> list[dict]:
    """The owner's own lineages, newest first, PINs included."""
    own = [r for r in all_records if r.user_id == owner_id]
    resolver = LineageResolver(own)
    return [serialize_file(h, owner_id) for h in _newest_first(resolver.heads())]


# ── Loaders ──────────────────────────────────────────────────────

async def load_all_files(db: AsyncSession) -> list[FileRecord]:
    result = await db.execute(select(FileRecord).order_by(FileRecord.created_at))
    return list(result.scalars().all())


async def load_owned_files(db: AsyncSession, owner_id: str) -> list[FileRecord]:
    result = await db.execute(
        select(FileRecord)
        .where(FileRecord.user_id == owner_id)
        .order_by(FileRecord.created_at)
    )
    return list(result.scalars().all())


async def load_tags_for(db: AsyncSession, file_ids: list[str]) -> dict[str, list[str]]:
    """Tag names per file id (sorted). Files without tags map to []."""
    tags: dict[str, list[str]] = {file_id: [] for file_id in file_ids}
    if not file_ids:
        return tags
    result = await db.execute(
        select(FileTag.file_id, Tag.name)
        .join(Tag, Tag.id == FileTag.tag_id)
        .where(FileTag.file_id.in_(file_ids))
        .order_by(Tag.name)
    )
    for file_id, name in result.all():
        tags[file_id].append(name)
    return tags


async def storage_usage(db: AsyncSession, user_id: str) -> int:
    """Total bytes stored by a user across all their records."""
    result = await db.execute(
        select(func.coalesce(func.sum(FileRecord.size), 0)).where(FileRecord.user_id == user_id)
    )
    return int(result.scalar_one() or 0)
