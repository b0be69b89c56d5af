"""Download counters and the download audit log.

Counters live on the physical record that was requested, even though access
was decided against the lineage head. The increment is a single
``download_count = download_count + 1`` UPDATE so concurrent downloads never
lose counts. The audit row is written afterwards and is best-effort: the
download has already been granted, so a failed log write is reported in the
logs and swallowed.

Limits are judged against the whole lineage: the caller sums counters and
counts log rows over every version id.

Limits are soft. Two concurrent requests can both pass the limit check before
either increments; that overshoot is accepted.
"""
import logging
from typing import Iterable, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fileshare.models.download_log import DownloadLog
from fileshare.models.file_record import FileRecord

logger = logging.getLogger(__name__)


class FileRecordNotFound(Exception):
    """Raised when a file id has no record."""

    def __init__(self, file_id: str):
        super().__init__(f"File {file_id} not found")
        self.file_id = file_id


async def record_download(
    db: AsyncSession,
    file_id: str,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> FileRecord:
    """Count one download of ``file_id`` and log it. Returns the updated record."""
    result = await db.execute(
        update(FileRecord)
        .where(FileRecord.id == file_id)
        .values(download_count=FileRecord.download_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise FileRecordNotFound(file_id)
    await db.commit()

    try:
        db.add(DownloadLog(file_id=file_id, user_id=user_id, ip_address=ip_address))
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Download of {file_id} counted but not logged: {e}")

    refreshed = await db.execute(
        select(FileRecord)
        .where(FileRecord.id == file_id)
        .execution_options(populate_existing=True)
    )
    return refreshed.scalar_one()


async def count_user_downloads(db: AsyncSession, file_ids: Iterable[str], user_id: str) -> int:
    """How many logged downloads ``user_id`` has of any of ``file_ids``."""
    file_ids = list(file_ids)
    if not file_ids:
        return 0
    result = await db.execute(
        select(func.count(DownloadLog.id)).where(
            DownloadLog.file_id.in_(file_ids),
            DownloadLog.user_id == user_id,
        )
    )
    return int(result.scalar_one() or 0)
