"""Import all models so SQLAlchemy metadata knows about them."""
from fileshare.models.base import Base
from fileshare.models.file_record import FileRecord
from fileshare.models.download_log import DownloadLog
from fileshare.models.tag import Tag, FileTag

__all__ = [
    "Base",
    "FileRecord", "DownloadLog", "Tag", "FileTag",
]
