import asyncio
from typing import List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from routers import rate_limit
from services.image_provider import get_image_provider
from services.storage import MediaStorage, get_media_storage


class FakeImageProvider:
    """Stands in for the OpenAI provider; records calls and replays a scripted outcome."""

    def __init__(self, images: Optional[List[str]] = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.images = ["aW1hZ2UtMQ=="] if images is None else images
        self.error = error
        self.delay = delay
        self.generate_calls = []
        self.edit_calls = []

    async def _respond(self) -> List[str]:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.images)

    async def generate(self, params):
        self.generate_calls.append(params)
        return await self._respond()

    async def edit(self, params):
        self.edit_calls.append(params)
        return await self._respond()


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest.fixture
def fake_provider():
    return FakeImageProvider()


@pytest.fixture
def media_storage(tmp_path):
    return MediaStorage(str(tmp_path / "media"), "https://cdn.test/media")


@pytest_asyncio.fixture
async def integration_client(session_maker, fake_provider, media_storage):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_image_provider] = lambda: fake_provider
    app.dependency_overrides[get_media_storage] = lambda: media_storage
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_image_provider, None)
    app.dependency_overrides.pop(get_media_storage, None)
