"""File request/response schemas."""
from datetime import datetime
from typing import Annotated, Optional
from pydantic import Field
from fileshare.schemas.base import CamelModel, CamelORMModel

PIN_PATTERN = r"^\d{4}$"
# Ids issued by /api/upload-url are uuid4 strings
FILE_ID_PATTERN = r"^[A-Za-z0-9_-]+$"

TagName = Annotated[str, Field(max_length=100)]


class FileCreate(CamelModel):
    """Metadata sync after the client uploaded the bytes with an upload URL."""
    id: str = Field(..., min_length=1, max_length=36, pattern=FILE_ID_PATTERN)
    name: str = Field(..., min_length=1, max_length=255)
    key: str = Field(..., min_length=1, max_length=500)
    type: str = Field(..., max_length=100)
    size: int = Field(..., ge=0)
    category: Optional[str] = Field(None, max_length=100)
    parent_id: Optional[str] = None
    is_private: bool = False
    pin: Optional[str] = Field(None, pattern=PIN_PATTERN)
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = Field(None, ge=0)
    max_downloads_per_user: Optional[int] = Field(None, ge=0)
    tags: list[TagName] = []


class FileUpdate(CamelModel):
    """Owner update. Only provided fields change; an explicit null clears a policy field."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    is_private: Optional[bool] = None
    pin: Optional[str] = Field(None, pattern=PIN_PATTERN)
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = Field(None, ge=0)
    max_downloads_per_user: Optional[int] = Field(None, ge=0)
    tags: Optional[list[TagName]] = None


class FileResponse(CamelORMModel):
    id: str
    user_id: Optional[str] = None
    name: str
    key: Optional[str] = None
    type: str
    size: int
    category: Optional[str] = None
    parent_id: Optional[str] = None
    is_private: bool = False
    pin: Optional[str] = None
    has_pin: bool = False
    expires_at: Optional[datetime] = None
    max_downloads: Optional[int] = None
    max_downloads_per_user: Optional[int] = None
    download_count: int = 0
    created_at: datetime
    tags: Optional[list[str]] = None


class UploadUrlRequest(CamelModel):
    filename: str = Field(..., min_length=1, max_length=255)
    type: str = Field(..., min_length=1, max_length=100)


class UploadUrlResponse(CamelModel):
    url: str
    key: str
    id: str


class StorageUsageResponse(CamelModel):
    total_bytes: int


class BulkDeleteRequest(CamelModel):
    ids: list[str] = Field(..., min_length=1)


class BulkTagRequest(CamelModel):
    ids: list[str] = Field(..., min_length=1)
    tags: list[TagName] = Field(..., min_length=1)


class BulkResult(CamelModel):
    id: str
    ok: bool
    error: Optional[str] = None
