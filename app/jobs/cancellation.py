"""Cooperative cancellation flags for in-flight generation requests."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from app.jobs.progress import JobCanceledError
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class _Entry:
  cancelled: bool
  registered_at: float
  finished_at: float | None = None


class CancellationRegistry:
  """
  Plain flag store keyed by request id.

  Setting a flag never interrupts running work; holders of a token observe
  it at their next phase boundary. An entry lives until its run calls
  `cleanup`, then lingers for the TTL so sub-jobs still draining after the
  run ended keep seeing the flag. Only those finished entries are swept.

  With a shared job store, `refresh` also picks up cancellations recorded
  by other processes on the job record.
  """

  def __init__(self, *, ttl_seconds: float = 900, clock: Clock = time.monotonic, shared: JobsRepository | None = None) -> None:
    self._entries: dict[str, _Entry] = {}
    self._ttl_seconds = ttl_seconds
    self._clock = clock
    self._shared = shared

  def register(self, request_id: str) -> CancellationToken:
    self.sweep()
    self._entries[request_id] = _Entry(cancelled=False, registered_at=self._clock())
    return CancellationToken(request_id, self)

  def token(self, request_id: str) -> CancellationToken:
    return CancellationToken(request_id, self)

  def is_known(self, request_id: str) -> bool:
    """True while the request is registered and its run has not finished."""
    self.sweep()
    entry = self._entries.get(request_id)
    return entry is not None and entry.finished_at is None

  def is_cancelled(self, request_id: str) -> bool:
    entry = self._entries.get(request_id)
    return entry is not None and entry.cancelled

  def cancel(self, request_id: str) -> bool:
    """Flag a request as cancelled; returns whether the id was known."""
    if not self.is_known(request_id):
      return False
    self._entries[request_id].cancelled = True
    logger.info("Cancellation requested for %s", request_id)
    return True

  async def refresh(self, request_id: str) -> bool:
    """Adopt a cancellation stored on the shared job record; returns the flag."""
    entry = self._entries.get(request_id)
    if entry is None or entry.cancelled or self._shared is None:
      return self.is_cancelled(request_id)
    try:
      job = await self._shared.get_job(request_id)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Could not read the shared cancellation flag for %s: %s", request_id, exc)
      return False
    if job is not None and job.cancel_requested:
      logger.info("Cancellation for %s was requested by another process", request_id)
      entry.cancelled = True
    return entry.cancelled

  def cleanup(self, request_id: str) -> None:
    """Mark the run finished; the entry is swept once the TTL has passed."""
    entry = self._entries.get(request_id)
    if entry is not None and entry.finished_at is None:
      entry.finished_at = self._clock()

  def sweep(self) -> int:
    cutoff = self._clock() - self._ttl_seconds
    stale = [request_id for request_id, entry in self._entries.items() if entry.finished_at is not None and entry.finished_at < cutoff]
    for request_id in stale:
      del self._entries[request_id]
    if stale:
      logger.debug("Swept %d finished cancellation entries", len(stale))
    return len(stale)


class CancellationToken:
  """Read-only view of one request's cancellation flag."""

  def __init__(self, request_id: str, registry: CancellationRegistry) -> None:
    self.request_id = request_id
    self._registry = registry

  @property
  def cancelled(self) -> bool:
    return self._registry.is_cancelled(self.request_id)

  def raise_if_cancelled(self) -> None:
    if self.cancelled:
      raise JobCanceledError(f"Request {self.request_id} was cancelled.")

  async def checkpoint(self) -> None:
    """Phase-boundary check that also consults the shared job record."""
    await self._registry.refresh(self.request_id)
    self.raise_if_cancelled()
