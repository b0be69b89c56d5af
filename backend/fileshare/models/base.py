"""SQLAlchemy declarative base and shared mixins."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import String, DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class CreatedAtMixin:
    """Adds a created_at column stamped in-process (microsecond precision).

    Lineage heads are picked by created_at, so two uploads in the same second
    must still order correctly.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class OwnerMixin:
    """Adds an optional owner user_id. NULL means an anonymous upload."""
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
