from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from app.jobs.cancellation import CancellationRegistry
from app.jobs.models import JobRecord
from app.jobs.progress import JobCanceledError
from app.storage.jobs_repo import InMemoryJobsRepository


class FakeClock:
  def __init__(self) -> None:
    self.now = 0.0

  def __call__(self) -> float:
    return self.now


def test_token_observes_cancellation() -> None:
  registry = CancellationRegistry()
  token = registry.register("req-1")

  token.raise_if_cancelled()
  assert registry.cancel("req-1") is True
  assert token.cancelled

  with pytest.raises(JobCanceledError):
    token.raise_if_cancelled()


def test_cancel_unknown_id_returns_false() -> None:
  registry = CancellationRegistry()
  assert registry.cancel("missing") is False
  assert registry.is_cancelled("missing") is False


def test_finished_request_is_no_longer_cancellable_but_keeps_its_flag() -> None:
  registry = CancellationRegistry()
  registry.register("req-1")
  registry.cancel("req-1")

  registry.cleanup("req-1")

  assert not registry.is_known("req-1")
  assert registry.cancel("req-1") is False
  # Sub-jobs still draining after the run ended must keep seeing the flag.
  assert registry.token("req-1").cancelled


def test_sweep_only_drops_finished_entries_older_than_ttl() -> None:
  clock = FakeClock()
  registry = CancellationRegistry(ttl_seconds=10, clock=clock)
  registry.register("finished")
  registry.register("running")
  clock.now = 1
  registry.cleanup("finished")

  clock.now = 12
  assert registry.sweep() == 1
  assert not registry.is_cancelled("finished")
  assert registry.is_known("running")


def test_long_running_request_stays_cancellable() -> None:
  clock = FakeClock()
  registry = CancellationRegistry(ttl_seconds=900, clock=clock)
  token = registry.register("req-1")

  clock.now = 5000
  assert registry.cancel("req-1") is True
  assert token.cancelled


@pytest.mark.anyio
async def test_checkpoint_adopts_a_flag_set_on_the_shared_job_record() -> None:
  jobs_repo = InMemoryJobsRepository()
  await jobs_repo.create_job(JobRecord(request_id="req-1", caller_id=None, request={"query": "pizza"}, phase="aggregating", created_at="2026-01-01T00:00:00Z", updated_at="2026-01-01T00:00:00Z"))
  registry = CancellationRegistry(shared=jobs_repo)
  token = registry.register("req-1")

  await token.checkpoint()
  await jobs_repo.update_job("req-1", cancel_requested=True)
  assert not token.cancelled

  with pytest.raises(JobCanceledError):
    await token.checkpoint()
  assert registry.is_cancelled("req-1")


@pytest.mark.anyio
async def test_refresh_tolerates_an_unavailable_shared_store() -> None:
  jobs_repo = AsyncMock()
  jobs_repo.get_job.side_effect = ConnectionError("database down")
  registry = CancellationRegistry(shared=jobs_repo)
  registry.register("req-1")

  assert await registry.refresh("req-1") is False
  jobs_repo.get_job.assert_awaited_once_with("req-1")
