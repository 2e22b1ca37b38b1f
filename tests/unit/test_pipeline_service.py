from __future__ import annotations

import asyncio

import pytest

from app.jobs.cancellation import CancellationRegistry
from app.jobs.models import JobRecord
from app.jobs.snapshots import SnapshotCache
from app.services.pipeline import DuplicateRequestError
from app.storage.jobs_repo import InMemoryJobsRepository
from tests.conftest import Harness, make_draft


@pytest.mark.anyio
async def test_submit_then_poll_until_terminal(harness: Harness) -> None:
  try:
    request_id = await harness.service.submit("margherita pizza", {"diet": "vegetarian"}, "basic")
    queued = await harness.service.get_status(request_id)
    assert queued.phase == "queued"
    assert queued.progress_percent == 0.0

    await harness.service.wait(request_id)
    status = await harness.service.get_status(request_id)
  finally:
    await harness.shutdown()

  assert status.phase == "completed"
  assert status.progress_percent == 100.0
  assert status.partial_draft is not None
  assert status.partial_draft.id == status.recipe_id
  assert all(step.image_url for step in status.partial_draft.steps)
  assert harness.content.calls == [("margherita pizza", {"diet": "vegetarian"})]
  assert {params.quality for _, params in harness.images.calls} == {"hd"}


@pytest.mark.anyio
async def test_unknown_request_reports_unknown_phase(harness: Harness) -> None:
  status = await harness.service.get_status("never-submitted")

  assert status.phase == "unknown"
  assert status.progress_percent == 0.0
  assert status.partial_draft is None


@pytest.mark.anyio
async def test_cancel_unknown_request_is_not_accepted(harness: Harness) -> None:
  result = await harness.service.cancel("never-submitted")
  assert result.accepted is False


@pytest.mark.anyio
async def test_duplicate_request_id_is_rejected(harness: Harness) -> None:
  try:
    await harness.service.submit("pizza", request_id="fixed-id")
    with pytest.raises(DuplicateRequestError):
      await harness.service.submit("pizza", request_id="fixed-id")
  finally:
    await harness.shutdown()


@pytest.mark.anyio
async def test_cancel_before_start_ends_cancelled(harness: Harness) -> None:
  try:
    request_id = await harness.service.submit("pizza")
    result = await harness.service.cancel(request_id)
    assert result.accepted is True
    outcome = await harness.service.wait(request_id)
  finally:
    await harness.shutdown()

  assert outcome is not None
  assert outcome.outcome == "cancelled"
  assert harness.content.calls == []
  status = await harness.service.get_status(request_id)
  assert status.phase == "cancelled"
  assert status.partial_draft is None


@pytest.mark.anyio
async def test_partial_draft_is_visible_while_images_are_pending() -> None:
  gate = asyncio.Event()
  harness = Harness()
  original_generate = harness.images.generate

  async def slow_generate(prompt, quality_params):  # type: ignore[no-untyped-def]
    await gate.wait()
    return await original_generate(prompt, quality_params)

  harness.images.generate = slow_generate  # type: ignore[method-assign]
  try:
    request_id = await harness.service.submit("pizza")
    for _ in range(500):
      status = await harness.service.get_status(request_id)
      if status.phase == "aggregating":
        break
      await asyncio.sleep(0)
    assert status.phase == "aggregating"
    assert status.partial_draft is not None
    assert status.partial_draft.title == "Classic Margherita Pizza"
    assert all(step.image_url is None for step in status.partial_draft.steps)
    assert 55.0 <= status.progress_percent < 95.0
    gate.set()
    await harness.service.wait(request_id)
  finally:
    gate.set()
    await harness.shutdown()


class FakeClock:
  def __init__(self) -> None:
    self.now = 0.0

  def __call__(self) -> float:
    return self.now


@pytest.mark.anyio
async def test_cancel_of_a_long_running_request_keeps_its_snapshot() -> None:
  clock = FakeClock()
  jobs_repo = InMemoryJobsRepository()
  harness = Harness(jobs_repo=jobs_repo, cancellations=CancellationRegistry(ttl_seconds=900, clock=clock, shared=jobs_repo))
  await jobs_repo.create_job(JobRecord(request_id="r1", caller_id=None, request={"query": "pizza"}, phase="aggregating", created_at="2026-01-01T00:00:00Z", updated_at="2026-01-01T00:00:00Z"))
  harness.cancellations.register("r1")
  await harness.snapshots.put("r1", make_draft())

  clock.now = 901
  result = await harness.service.cancel("r1")

  assert result.accepted is True
  assert harness.cancellations.is_cancelled("r1")
  assert (await jobs_repo.get_job("r1")).cancel_requested
  status = await harness.service.get_status("r1")
  assert status.phase == "aggregating"
  assert status.partial_draft is not None


@pytest.mark.anyio
async def test_cancel_after_completion_is_not_accepted(harness: Harness) -> None:
  try:
    request_id = await harness.service.submit("pizza")
    await harness.service.wait(request_id)
    result = await harness.service.cancel(request_id)
  finally:
    await harness.shutdown()

  assert result.accepted is False
  assert (await harness.service.get_status(request_id)).phase == "completed"


@pytest.mark.anyio
async def test_another_process_can_report_and_cancel_a_request() -> None:
  jobs_repo = InMemoryJobsRepository()
  snapshots = SnapshotCache()
  worker = Harness(jobs_repo=jobs_repo, snapshots=snapshots)
  # A second process: its own registry and pools, the same shared stores.
  frontend = Harness(jobs_repo=jobs_repo, snapshots=snapshots)
  try:
    request_id = await worker.service.submit("pizza")
    assert (await frontend.service.get_status(request_id)).phase == "queued"

    result = await frontend.service.cancel(request_id)
    outcome = await worker.service.wait(request_id)
  finally:
    await worker.shutdown()
    await frontend.shutdown()

  assert result.accepted is True
  assert not frontend.cancellations.is_known(request_id)
  assert outcome is not None
  assert outcome.outcome == "cancelled"
  assert (await frontend.service.get_status(request_id)).phase == "cancelled"
