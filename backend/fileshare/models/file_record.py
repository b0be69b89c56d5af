"""FileRecord model - file metadata (actual bytes live in object storage)."""
from datetime import datetime
from sqlalchemy import String, BigInteger, Integer, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column
from fileshare.models.base import Base, CreatedAtMixin, OwnerMixin, new_id


class FileRecord(Base, CreatedAtMixin, OwnerMixin):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Version lineage: NULL means this record is a lineage root
    parent_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    # Access policy (only the lineage head's values are enforced)
    is_private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    pin: Mapped[str | None] = mapped_column(String(4), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    max_downloads: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_downloads_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)

    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
