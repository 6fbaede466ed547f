# db.py
import logging
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)

# Base class for declarative models. All models in `models.py` inherit from this.
Base = declarative_base()


def normalize_database_url(url: str) -> str:
    """Point PostgreSQL URLs at the asyncpg driver."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith(":memory:") or url.endswith("://"))


class Database:
    """
    Owns the async engine and the session factory for one application.

    Built once at startup from the settings and stored on `app.state`.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = normalize_database_url(url)

        if self.url.startswith("sqlite"):
            logger.info("Using SQLite database.")
            engine_kwargs = {"connect_args": {"check_same_thread": False}}
            if _is_memory_sqlite(self.url):
                # One shared connection, otherwise every session sees an empty database.
                engine_kwargs["poolclass"] = StaticPool
        else:
            logger.info("Connecting to PostgreSQL database.")
            # `pool_recycle` keeps idle connections from being dropped by the
            # database or network infrastructure.
            engine_kwargs = {
                "pool_size": 10,
                "max_overflow": 5,
                "pool_timeout": 30,
                "pool_recycle": 1800,
            }

        self.engine = create_async_engine(self.url, echo=echo, **engine_kwargs)

        # `expire_on_commit=False` keeps loaded attributes readable after commit,
        # which async sessions need since lazy loads cannot run implicitly.
        self.session_maker = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_all(self) -> None:
        # Import models so Base.metadata knows them
        from shopfront import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables verified/created.")

    async def drop_all(self) -> None:
        from shopfront import models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


# --- FastAPI Dependency ---

async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session to each request.

    The session is rolled back if the request fails and always closed.
    """
    database: Database = request.app.state.db
    async with database.session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
