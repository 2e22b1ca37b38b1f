from __future__ import annotations

import dataclasses
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.jobs.models import JobRecord
from app.schema.sql import GenerationJob
from app.storage.postgres_jobs_repo import PostgresJobsRepository, _record_from_row, _row_values


def _record(**overrides: object) -> JobRecord:
  record = JobRecord(request_id="req-1", caller_id="user-7", request={"query": "pizza"}, phase="aggregating", created_at="2026-01-01T00:00:00Z", updated_at="2026-01-01T00:00:05Z", total_images=4, completed_images=1, failed_steps=[2], warnings=["caller copy failed: offline"])
  return dataclasses.replace(record, **overrides)


def _session_factory(row: GenerationJob | None) -> tuple[MagicMock, AsyncMock]:
  session = AsyncMock()
  session.add = MagicMock()
  session.get.return_value = row
  factory = MagicMock()
  factory.return_value.__aenter__.return_value = session
  return factory, session


def test_rows_carry_every_job_field() -> None:
  record = _record(cancel_requested=True)

  row = GenerationJob(**_row_values(dataclasses.asdict(record)))

  assert _record_from_row(row) == record


def test_unknown_fields_are_rejected() -> None:
  with pytest.raises(ValueError, match="status"):
    _row_values({"phase": "completed", "status": "done"})


@pytest.mark.anyio
async def test_create_job_adds_a_row_and_commits() -> None:
  factory, session = _session_factory(None)

  await PostgresJobsRepository(factory).create_job(_record())

  added = session.add.call_args.args[0]
  assert isinstance(added, GenerationJob)
  assert added.request_id == "req-1"
  assert added.cancel_requested is False
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_update_job_keeps_a_requested_cancellation() -> None:
  row = GenerationJob(**_row_values(dataclasses.asdict(_record(cancel_requested=True))))
  factory, session = _session_factory(row)

  updated = await PostgresJobsRepository(factory).update_job("req-1", phase="cancelled", progress_percent=100.0, cancel_requested=False)

  assert updated is not None
  assert updated.phase == "cancelled"
  assert updated.cancel_requested is True
  session.get.assert_awaited_once_with(GenerationJob, "req-1", with_for_update=True)
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_update_of_a_missing_job_returns_none() -> None:
  factory, session = _session_factory(None)

  assert await PostgresJobsRepository(factory).update_job("missing", phase="failed") is None
  session.commit.assert_not_awaited()
