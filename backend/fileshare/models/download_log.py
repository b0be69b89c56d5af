"""DownloadLog model - append-only audit row per successful download."""
from sqlalchemy import String, Index
from sqlalchemy.orm import Mapped, mapped_column
from fileshare.models.base import Base, CreatedAtMixin, new_id


class DownloadLog(Base, CreatedAtMixin):
    __tablename__ = "download_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # No FK: audit rows outlive the file they describe
    file_id: Mapped[str] = mapped_column(String(36), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_download_logs_file_user", "file_id", "user_id"),
    )
