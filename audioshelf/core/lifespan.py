from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI
from sqlalchemy import select

from audioshelf.core import security
from audioshelf.core.config import settings
from audioshelf.db.database import AsyncSessionLocal, Base, engine
# Imported so their tables are registered on Base.metadata
from audioshelf.models import catalog, progress, sharing  # noqa: F401
from audioshelf.models.user import ROLE_ADMIN, User
from audioshelf.utils.logger import setup_logging

logger = structlog.get_logger()


async def ensure_admin(session) -> None:
    """Create the first admin account when none exists yet."""
    if not settings.first_admin_username or not settings.first_admin_password:
        return
    result = await session.execute(select(User.id).where(User.role == ROLE_ADMIN))
    if result.first() is not None:
        return
    session.add(
        User(
            username=settings.first_admin_username,
            hashed_password=security.get_password_hash(settings.first_admin_password),
            role=ROLE_ADMIN,
        )
    )
    await session.commit()
    logger.warning(
        "Created initial admin account; change its password",
        username=settings.first_admin_username,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Starting up Audioshelf API", version=settings.version)

    logger.info("Initializing database and creating tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created.")

    async with AsyncSessionLocal() as session:
        await ensure_admin(session)

    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    logger.info("Startup complete")

    yield

    logger.info("Shutting down Audioshelf API")
    await engine.dispose()
    logger.info("Shutdown complete")
