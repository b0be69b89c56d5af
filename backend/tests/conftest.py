"""Shared fixtures: in-memory database, fake storage, recording notifier, API client."""
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from fileshare.database import get_db
from fileshare.main import app
from fileshare.models import Base
from fileshare.services.file_storage import StorageError, get_object_storage
from fileshare.services.notifier import get_notifier


class FakeStorage:
    """Stands in for S3: issues predictable URLs and records deletes."""

    storage_type = "fake"

    def __init__(self):
        self.deleted: list[str] = []
        self.fail_delete = False

    async def issue_upload_capability(self, key: str, content_type: str) -> str:
        return f"https://storage.test/upload/{key}"

    async def issue_download_capability(self, key: str, filename: str, inline: bool = False) -> str:
        mode = "inline" if inline else "attachment"
        return f"https://storage.test/{key}?mode={mode}"

    async def delete_object(self, key: str) -> None:
        if self.fail_delete:
            raise StorageError("bucket unreachable")
        self.deleted.append(key)


class RecordingNotifier:
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def publish(self, event_kind: str, payload: dict) -> None:
        self.events.append((event_kind, payload))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(session_factory, storage, notifier):
    """API client wired to the in-memory database and fakes."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_object_storage] = lambda: storage
    app.dependency_overrides[get_notifier] = lambda: notifier
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
