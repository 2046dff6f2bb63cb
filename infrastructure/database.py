"""
Database engine and session management
"""
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator

from core.config import settings
from infrastructure.models import Base


def _build_async_url(database_url: str) -> str:
    """Make sure the URL uses an async driver"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"Unsupported database driver: {drivername}. Use an async driver in DATABASE__URL")

    async_driver = driver_map[drivername]
    return url.set(drivername=async_driver).render_as_string(hide_password=False)


def _engine_kwargs(url: str) -> dict:
    kwargs = {"echo": settings.database.echo or settings.DEBUG, "future": True}
    if not make_url(url).drivername.startswith("sqlite"):
        kwargs["pool_size"] = settings.database.pool_size
        kwargs["pool_pre_ping"] = True
    return kwargs


_async_url = _build_async_url(settings.database.url)
engine = create_async_engine(_async_url, **_engine_kwargs(_async_url))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session; the caller controls the transaction"""
    async with AsyncSessionLocal() as session:
        yield session


async def create_tables():
    """Create every mapped table"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables():
    """
    Drop every mapped table

    Test environments only: deletes all data.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def create_worker_session_factory():
    """
    Engine + session factory for one worker event loop.

    Celery tasks run each job batch under its own `asyncio.run`; pooled
    connections cannot cross loops, so workers use NullPool and dispose the
    engine when the batch ends.
    """
    worker_engine = create_async_engine(_async_url, echo=settings.database.echo, poolclass=NullPool)
    return worker_engine, async_sessionmaker(bind=worker_engine, expire_on_commit=False)
