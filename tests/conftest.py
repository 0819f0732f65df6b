"""Fixtures shared by the service, API and player tests."""

from os import environ

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# These must be set before the application is imported.
environ.setdefault("AUDIOSHELF_DATABASE_URL", "sqlite+aiosqlite://")
environ.setdefault("AUDIOSHELF_SECRET_KEY", "test-secret")
environ.setdefault("AUDIOSHELF_FIRST_ADMIN_USERNAME", "")

from audioshelf.core.config import settings  # noqa: E402
from audioshelf.db.database import Base, build_engine, get_db  # noqa: E402
from audioshelf.main import create_app  # noqa: E402
from audioshelf.models.user import ROLE_ADMIN  # noqa: E402
from factories import create_track, create_user  # noqa: E402


@pytest.fixture()
async def engine():
    """A fresh in-memory database per test; every session shares one connection."""
    engine = build_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture()
def app(session_factory):
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url=f"http://test{settings.api_prefix}"
    ) as c:
        yield c


@pytest.fixture()
def upload_dir(tmp_path, monkeypatch):
    target = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_dir", str(target))
    return target


@pytest.fixture()
async def seeded(session_factory):
    """An admin, two users, one public and one private track."""
    async with session_factory() as s:
        data = {
            "admin": await create_user(s, "admin", ROLE_ADMIN),
            "alice": await create_user(s, "alice"),
            "bob": await create_user(s, "bob"),
            "public": await create_track(s, "Morning Focus", duration=600),
            "private": await create_track(s, "Deep Sleep", duration=1200, is_public=False),
        }
    return data
