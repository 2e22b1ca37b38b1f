"""Postgres-backed primary tier for progressive recipe snapshots."""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.schema.sql import RecipeSnapshot


class PostgresSnapshotStore:
  """Shared snapshot store; any method may raise when the database is unavailable."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def read(self, request_id: str) -> dict[str, Any] | None:
    async with self._session_factory() as session:
      result = await session.execute(select(RecipeSnapshot.payload).where(RecipeSnapshot.request_id == request_id))
      payload = result.scalar_one_or_none()
      return dict(payload) if payload is not None else None

  async def write(self, request_id: str, payload: dict[str, Any]) -> None:
    async with self._session_factory() as session:
      stmt = insert(RecipeSnapshot).values(request_id=request_id, payload=payload)
      stmt = stmt.on_conflict_do_update(index_elements=[RecipeSnapshot.request_id], set_={"payload": stmt.excluded.payload, "updated_at": func.now()})
      await session.execute(stmt)
      await session.commit()

  async def delete(self, request_id: str) -> None:
    async with self._session_factory() as session:
      await session.execute(delete(RecipeSnapshot).where(RecipeSnapshot.request_id == request_id))
      await session.commit()
