"""Tags API routes."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from fileshare.database import get_db
from fileshare.schemas.tag import TagResponse
from fileshare.services.tagging import list_tags

router = APIRouter(prefix="/api/tags", tags=["tags"])


@router.get("", response_model=list[TagResponse])
async def list_all_tags(db: AsyncSession = Depends(get_db)):
    """List all tags with the number of files using each."""
    return [{"name": name, "count": count} for name, count in await list_tags(db)]
