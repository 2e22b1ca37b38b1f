"""Per-step image sub-job: generate, download and upload with independent retries."""

from __future__ import annotations

import asyncio
import logging

from app.ai.backoff import Sleep, retry_phase
from app.ai.errors import DegradedStepError
from app.ai.pipeline.contracts import StepImageOutcome, StepImageTask
from app.ai.prompts import image_params_for_tier, style_image_prompt
from app.ai.providers.base import ImageProvider
from app.jobs.cancellation import CancellationRegistry
from app.jobs.snapshots import SnapshotCache
from app.services.downloader import ImageDownloader
from app.services.storage_client import BlobStore

logger = logging.getLogger(__name__)

IMAGE_CONTENT_TYPE = "image/png"


def step_image_path(recipe_id: str, step_index: int) -> str:
  return f"recipes/{recipe_id}/steps/{step_index}.png"


class ImageSubJobRunner:
  """Run one StepImageTask to completion; never raises."""

  def __init__(
    self,
    *,
    provider: ImageProvider,
    downloader: ImageDownloader,
    blob_store: BlobStore,
    snapshots: SnapshotCache,
    cancellations: CancellationRegistry,
    attempts: int = 3,
    base_seconds: float = 1.0,
    sleep: Sleep = asyncio.sleep,
  ) -> None:
    self._provider = provider
    self._downloader = downloader
    self._blob_store = blob_store
    self._snapshots = snapshots
    self._cancellations = cancellations
    self._attempts = attempts
    self._base_seconds = base_seconds
    self._sleep = sleep

  async def _phase(self, task: StepImageTask, phase: str, func):  # type: ignore[no-untyped-def]
    label = f"[{task.request_id} step={task.step_index}]"
    try:
      return await retry_phase(func, phase=phase, attempts=self._attempts, base_seconds=self._base_seconds, sleep=self._sleep, label=label)
    except asyncio.CancelledError:
      raise
    except Exception as exc:  # noqa: BLE001
      raise DegradedStepError(task.step_index, phase, exc) from exc

  async def execute(self, task: StepImageTask) -> StepImageOutcome:
    params = image_params_for_tier(task.subscription_tier)
    prompt = style_image_prompt(task.prompt)
    try:
      temporary_url: str = await self._phase(task, "generate", lambda: self._provider.generate(prompt, params))
      data: bytes = await self._phase(task, "download", lambda: self._downloader.download(temporary_url))
      path = step_image_path(task.recipe_id, task.step_index)
      image_url: str = await self._phase(task, "upload", lambda: self._blob_store.upload(data, path, IMAGE_CONTENT_TYPE))
    except DegradedStepError as exc:
      logger.warning("Image sub-job degraded request=%s step=%d phase=%s: %s", task.request_id, task.step_index, exc.phase, exc.cause)
      await self._record(task, None)
      return StepImageOutcome(step_index=task.step_index, error=str(exc.cause) or type(exc.cause).__name__, failed_phase=exc.phase)

    logger.info("Image sub-job finished request=%s step=%d", task.request_id, task.step_index)
    await self._record(task, image_url)
    return StepImageOutcome(step_index=task.step_index, image_url=image_url)

  async def _record(self, task: StepImageTask, image_url: str | None) -> None:
    if not task.progressive_display or self._cancellations.is_cancelled(task.request_id):
      return
    try:
      await self._snapshots.put_step_result(task.request_id, task.step_index, image_url)
    except Exception:  # noqa: BLE001
      logger.error("Failed to record step %d image for %s", task.step_index, task.request_id, exc_info=True)
