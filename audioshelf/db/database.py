from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from audioshelf.core.config import settings


def build_engine(database_url: str, echo: bool = False, **kwargs):
    """Create an async engine; SQLite needs cross-thread access under FastAPI."""
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_async_engine(database_url, echo=echo, **kwargs)


# Create async engine
engine = build_engine(settings.database_url, echo=settings.database_echo)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Base class for your models to inherit from
Base = declarative_base()


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request; a request that fails rolls back its writes."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
