from __future__ import annotations

from dataclasses import dataclass

from app.config import DatabaseSettings
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
  pass


@dataclass
class Database:
  """Engine and session factory owned by one process lifespan."""

  engine: AsyncEngine
  session_factory: async_sessionmaker[AsyncSession]

  async def create_tables(self) -> None:
    # Import table modules so their metadata is registered on Base.
    from app.schema import sql  # noqa: F401

    async with self.engine.begin() as connection:
      await connection.run_sync(Base.metadata.create_all)

  async def dispose(self) -> None:
    await self.engine.dispose()


def database_url(settings: DatabaseSettings) -> str | None:
  """Build the SQLAlchemy database URL, forcing the asyncpg driver."""
  url = settings.pg_dsn
  if url and url.startswith("postgresql://"):
    url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
  return url


def build_database(settings: DatabaseSettings) -> Database | None:
  """Create the engine and session factory, or None when no DSN is configured."""
  url = database_url(settings)
  if not url:
    return None
  engine = create_async_engine(url, echo=settings.debug, future=True, pool_pre_ping=True, connect_args={"timeout": settings.pg_connect_timeout})
  factory = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
  return Database(engine=engine, session_factory=factory)
