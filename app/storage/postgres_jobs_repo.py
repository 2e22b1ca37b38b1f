"""Postgres-backed job status store shared by every worker process."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.jobs.models import JobRecord
from app.schema.sql import GenerationJob
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

_JOB_FIELDS: tuple[str, ...] = tuple(field.name for field in dataclasses.fields(JobRecord))


def _record_from_row(row: GenerationJob) -> JobRecord:
  return JobRecord(
    request_id=row.request_id,
    caller_id=row.caller_id,
    request=dict(row.request or {}),
    phase=row.phase,  # type: ignore[arg-type]
    created_at=row.created_at,
    updated_at=row.updated_at,
    progress_percent=row.progress_percent or 0.0,
    total_images=row.total_images,
    completed_images=row.completed_images,
    failed_steps=list(row.failed_steps or []),
    recipe_id=row.recipe_id,
    owner_copy_id=row.owner_copy_id,
    duplicate_of=row.duplicate_of,
    similarity_score=row.similarity_score,
    warnings=list(row.warnings or []),
    error=row.error,
    result_json=dict(row.result_json) if row.result_json is not None else None,
    logs=list(row.logs or []),
    completed_at=row.completed_at,
    cancel_requested=bool(row.cancel_requested),
  )


def _row_values(fields: dict[str, Any]) -> dict[str, Any]:
  """Validate update keys against JobRecord and copy mutable values."""
  unknown = sorted(set(fields) - set(_JOB_FIELDS))
  if unknown:
    raise ValueError(f"Unknown job fields: {', '.join(unknown)}")
  return {key: list(value) if isinstance(value, list) else value for key, value in fields.items()}


class PostgresJobsRepository(JobsRepository):
  """Persist job status and the cancellation flag to Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      session.add(GenerationJob(**_row_values(dataclasses.asdict(record))))
      await session.commit()

  async def get_job(self, request_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, request_id)
      return _record_from_row(row) if row is not None else None

  async def update_job(self, request_id: str, **fields: Any) -> JobRecord | None:
    values = _row_values(fields)
    async with self._session_factory() as session:
      row = await session.get(GenerationJob, request_id, with_for_update=True)
      if row is None:
        return None
      # A cancellation requested by any process sticks.
      if row.cancel_requested:
        values.pop("cancel_requested", None)
      for key, value in values.items():
        setattr(row, key, value)
      await session.commit()
      logger.debug("Updated job %s fields=%s", request_id, sorted(values))
      return _record_from_row(row)
