"""Tag response schemas."""
from fileshare.schemas.base import CamelModel


class TagResponse(CamelModel):
    name: str
    count: int
