"""Job phase and progress tracking."""

from __future__ import annotations

import logging
import time
from typing import Any

from app.jobs.models import JobPhase, JobRecord
from app.storage.jobs_repo import JobsRepository

MAX_TRACKED_LOGS = 100

logger = logging.getLogger(__name__)

# Percent reported when a phase is entered; aggregation interpolates toward persisting.
PHASE_PROGRESS: dict[str, float] = {
  "queued": 0.0,
  "generating_content": 10.0,
  "quality_check": 30.0,
  "enhancing": 35.0,
  "categorizing": 40.0,
  "duplicate_check": 45.0,
  "fanning_out_images": 50.0,
  "aggregating": 55.0,
  "persisting": 95.0,
  "completed": 100.0,
  "failed": 100.0,
  "cancelled": 100.0,
}


class JobCanceledError(Exception):
  """Exception raised when a request is cancelled by the caller."""


def _now_iso() -> str:
  return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _progress_percent(phase: str, *, completed_images: int = 0, total_images: int = 0) -> float:
  base = PHASE_PROGRESS.get(phase, 0.0)
  if phase != "aggregating" or total_images <= 0:
    return base
  span = PHASE_PROGRESS["persisting"] - base
  return min(round(base + span * (completed_images / total_images), 2), PHASE_PROGRESS["persisting"])


class JobProgressTracker:
  """Track the phase, progress and log lines of one generation request."""

  def __init__(self, *, request_id: str, jobs_repo: JobsRepository) -> None:
    self._request_id = request_id
    self._jobs_repo = jobs_repo
    self._phase: JobPhase = "queued"
    self._total_images = 0
    self._completed_images = 0
    self._logs: list[str] = []

  @property
  def phase(self) -> JobPhase:
    return self._phase

  @property
  def logs(self) -> list[str]:
    """Return a copy of the tracked logs."""

    return list(self._logs)

  def add_logs(self, *messages: str) -> None:
    """Append log lines while preserving the rolling window."""

    self._logs.extend(messages)
    if len(self._logs) > MAX_TRACKED_LOGS:
      self._logs = self._logs[-MAX_TRACKED_LOGS:]

  async def _update_job(self, **fields: Any) -> JobRecord | None:
    payload = {"phase": self._phase, "progress_percent": _progress_percent(self._phase, completed_images=self._completed_images, total_images=self._total_images), "updated_at": _now_iso(), "logs": list(self._logs)}
    payload.update(fields)
    return await self._jobs_repo.update_job(self._request_id, **payload)

  async def set_phase(self, phase: JobPhase, *, message: str | None = None) -> JobRecord | None:
    """Move to a new phase."""

    self._phase = phase
    if message:
      self.add_logs(message)
    logger.info("Request %s entered phase %s", self._request_id, phase)
    return await self._update_job()

  async def start_images(self, total: int) -> JobRecord | None:
    self._total_images = total
    self._completed_images = 0
    return await self._update_job(total_images=total, completed_images=0)

  async def image_finished(self) -> JobRecord | None:
    """Advance aggregation progress by one finished sub-job, success or not."""

    self._completed_images = min(self._completed_images + 1, self._total_images)
    return await self._update_job(completed_images=self._completed_images)

  async def complete(self, *, message: str | None = None, **fields: Any) -> JobRecord | None:
    self._phase = "completed"
    if message:
      self.add_logs(message)
    return await self._update_job(completed_at=_now_iso(), **fields)

  async def fail(self, *, message: str, **fields: Any) -> JobRecord | None:
    """Set the job to a failed state."""

    self._phase = "failed"
    self.add_logs(message)
    return await self._update_job(error=message, completed_at=_now_iso(), **fields)

  async def cancel(self, *, message: str = "Cancelled by caller.", **fields: Any) -> JobRecord | None:
    self._phase = "cancelled"
    self.add_logs(message)
    return await self._update_job(completed_at=_now_iso(), **fields)
