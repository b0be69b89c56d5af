"""Free-text tags attached to files.

Tag names are normalized (trimmed, lower-cased) and unique. Linking is
idempotent: attaching the same names again creates no new tags or links.
"""
import logging
from typing import Iterable

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from fileshare.models.tag import Tag, FileTag

logger = logging.getLogger(__name__)


def normalize_tag(name: str) -> str:
    return name.strip().lower()


def normalize_tags(names: Iterable[str]) -> list[str]:
    """Normalized, de-duplicated names with blanks dropped (first-seen order)."""
    seen: dict[str, None] = {}
    for name in names:
        normalized = normalize_tag(name or "")
        if normalized:
            seen.setdefault(normalized, None)
    return list(seen)


async def _get_or_create_tag(db: AsyncSession, name: str) -> Tag:
    result = await db.execute(select(Tag).where(Tag.name == name))
    tag = result.scalar_one_or_none()
    if tag:
        return tag
    # A concurrent insert of the same name fails the unique constraint here
    # and propagates as a persistence error.
    tag = Tag(name=name)
    db.add(tag)
    await db.flush()
    logger.info(f"Created tag '{name}'")
    return tag


async def attach_tags(db: AsyncSession, file_id: str, tag_names: Iterable[str]) -> list[str]:
    """Link tags to a file, creating missing tags. Returns the file's tags."""
    for name in normalize_tags(tag_names):
        tag = await _get_or_create_tag(db, name)
        existing = await db.get(FileTag, (file_id, tag.id))
        if existing is None:
            db.add(FileTag(file_id=file_id, tag_id=tag.id))
            await db.flush()
    await db.commit()
    return await get_file_tags(db, file_id)


async def get_file_tags(db: AsyncSession, file_id: str) -> list[str]:
    result = await db.execute(
        select(Tag.name)
        .join(FileTag, FileTag.tag_id == Tag.id)
        .where(FileTag.file_id == file_id)
        .order_by(Tag.name)
    )
    return list(result.scalars().all())


async def list_tags(db: AsyncSession) -> list[tuple[str, int]]:
    """Every tag name with the number of files it is linked to."""
    result = await db.execute(
        select(Tag.name, func.count(FileTag.file_id))
        .outerjoin(FileTag, FileTag.tag_id == Tag.id)
        .group_by(Tag.id, Tag.name)
        .order_by(Tag.name)
    )
    return [(name, count) for name, count in result.all()]
