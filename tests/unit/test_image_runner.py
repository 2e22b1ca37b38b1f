from __future__ import annotations

from unittest.mock import AsyncMock, call

import pytest

from app.ai.pipeline.contracts import StepImageTask
from app.jobs.cancellation import CancellationRegistry
from app.jobs.image_runner import ImageSubJobRunner, step_image_path
from app.jobs.snapshots import SnapshotCache
from app.services.downloader import EmptyDownloadError
from tests.conftest import FakeBlobStore, FakeDownloader, FakeImageProvider, make_draft


def _task(recipe_id: str, step_index: int = 0, *, tier: str = "free", progressive: bool = True) -> StepImageTask:
  return StepImageTask(recipe_id=recipe_id, request_id="req-1", step_index=step_index, prompt=f"Step {step_index + 1} for recipe 'Pizza': dough", subscription_tier=tier, progressive_display=progressive)


def _runner(provider, downloader, blobs, snapshots, sleep, cancellations=None) -> ImageSubJobRunner:  # type: ignore[no-untyped-def]
  return ImageSubJobRunner(provider=provider, downloader=downloader, blob_store=blobs, snapshots=snapshots, cancellations=cancellations or CancellationRegistry(), sleep=sleep)


@pytest.mark.anyio
async def test_successful_step_uploads_to_permanent_path_and_updates_snapshot() -> None:
  draft = make_draft()
  snapshots = SnapshotCache()
  await snapshots.put("req-1", draft)
  provider, downloader, blobs, sleep = FakeImageProvider(), FakeDownloader(), FakeBlobStore(), AsyncMock()

  outcome = await _runner(provider, downloader, blobs, snapshots, sleep).execute(_task(draft.id, 1, tier="premium"))

  assert outcome.ok
  assert outcome.image_url == f"https://cdn.example/{step_image_path(draft.id, 1)}"
  assert list(blobs.uploads) == [f"recipes/{draft.id}/steps/1.png"]
  prompt, params = provider.calls[0]
  assert prompt.startswith("Cartoon-style illustration of Step 2 for recipe 'Pizza'")
  assert (params.quality, params.size) == ("hd", "1792x1024")
  sleep.assert_not_awaited()
  stored = await snapshots.get("req-1")
  assert stored is not None
  assert stored.steps[1].image_url == outcome.image_url


@pytest.mark.anyio
async def test_generate_failures_exhaust_retries_without_download_or_upload() -> None:
  draft = make_draft()
  snapshots = SnapshotCache()
  await snapshots.put("req-1", draft)
  provider, downloader, blobs, sleep = FakeImageProvider(fail_steps={0}), FakeDownloader(), FakeBlobStore(), AsyncMock()

  outcome = await _runner(provider, downloader, blobs, snapshots, sleep).execute(_task(draft.id, 0))

  assert not outcome.ok
  assert outcome.failed_phase == "generate"
  assert "provider rejected step 0" in (outcome.error or "")
  assert len(provider.calls) == 3
  assert downloader.calls == []
  assert blobs.uploads == {}
  assert sleep.await_args_list == [call(2.0), call(4.0)]
  stored = await snapshots.get("req-1")
  assert stored is not None
  assert stored.steps[0].image_url is None


@pytest.mark.anyio
async def test_empty_download_degrades_the_step() -> None:
  downloader = FakeDownloader()
  downloader.download = AsyncMock(side_effect=EmptyDownloadError("empty body"))  # type: ignore[method-assign]
  blobs = FakeBlobStore()

  outcome = await _runner(FakeImageProvider(), downloader, blobs, SnapshotCache(), AsyncMock()).execute(_task("recipe-1"))

  assert outcome.failed_phase == "download"
  assert downloader.download.await_count == 3
  assert blobs.uploads == {}


@pytest.mark.anyio
async def test_transient_upload_failure_is_retried_in_its_own_phase() -> None:
  provider, downloader, sleep = FakeImageProvider(), FakeDownloader(), AsyncMock()
  blobs = AsyncMock()
  blobs.upload.side_effect = [RuntimeError("503"), "https://cdn.example/recipes/recipe-1/steps/0.png"]

  outcome = await _runner(provider, downloader, blobs, SnapshotCache(), sleep).execute(_task("recipe-1"))

  assert outcome.ok
  assert len(provider.calls) == 1
  assert len(downloader.calls) == 1
  assert sleep.await_args_list == [call(2.0)]


@pytest.mark.anyio
async def test_cancelled_or_non_progressive_requests_leave_the_snapshot_alone() -> None:
  draft = make_draft()
  snapshots = SnapshotCache()
  await snapshots.put("req-1", draft)
  cancellations = CancellationRegistry()
  cancellations.register("req-1")
  cancellations.cancel("req-1")

  await _runner(FakeImageProvider(), FakeDownloader(), FakeBlobStore(), snapshots, AsyncMock(), cancellations).execute(_task(draft.id, 0))
  await _runner(FakeImageProvider(), FakeDownloader(), FakeBlobStore(), snapshots, AsyncMock()).execute(_task(draft.id, 1, progressive=False))

  stored = await snapshots.get("req-1")
  assert stored is not None
  assert all(step.image_url is None for step in stored.steps)
