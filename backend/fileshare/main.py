"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from fileshare.config import settings
from fileshare.database import engine, get_db
from fileshare.models import Base
from fileshare.services.notifier import WebSocketNotifier

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup, attach the change notifier."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    notifier = WebSocketNotifier()
    app.state.notifier = notifier
    logger.info(f"File share API ready (storage={settings.FILE_STORAGE_TYPE})")

    yield

    # Cleanup
    await notifier.close()
    await engine.dispose()


app = FastAPI(
    title="File Share API",
    version="1.0.0",
    description="Backend API for sharing files through public, private and PIN-protected links.",
    lifespan=lifespan,
)

# CORS
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/api/health")
async def health_check():
    """Verify API and database connectivity."""
    try:
        async for db in get_db():
            await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
    except Exception as e:
        return {"status": "error", "database": str(e)}


# Register routers
from fileshare.routes.files import router as files_router, upload_router
from fileshare.routes.links import router as links_router
from fileshare.routes.tags import router as tags_router
from fileshare.routes.storage import router as storage_router
from fileshare.routes.ws import router as ws_router
app.include_router(upload_router)
app.include_router(files_router)
app.include_router(links_router)
app.include_router(tags_router)
app.include_router(storage_router)
app.include_router(ws_router)
