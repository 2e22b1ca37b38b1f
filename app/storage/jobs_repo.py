"""Storage interfaces for generation job status."""

from __future__ import annotations

import asyncio
import dataclasses
from collections import OrderedDict
from typing import Any, Protocol

from app.jobs.models import JobRecord


class JobsRepository(Protocol):
  """Repository contract for job status persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record."""

  async def get_job(self, request_id: str) -> JobRecord | None:
    """Fetch a job by request identifier."""

  async def update_job(self, request_id: str, **fields: Any) -> JobRecord | None:
    """Apply field updates and return the updated record."""


class InMemoryJobsRepository(JobsRepository):
  """Process-local job status store that keeps a bounded number of terminal jobs."""

  def __init__(self, *, terminal_retention: int = 1000) -> None:
    self._jobs: dict[str, JobRecord] = {}
    self._terminal: OrderedDict[str, None] = OrderedDict()
    self._terminal_retention = max(terminal_retention, 1)
    self._lock = asyncio.Lock()

  async def create_job(self, record: JobRecord) -> None:
    async with self._lock:
      self._jobs[record.request_id] = record

  async def get_job(self, request_id: str) -> JobRecord | None:
    record = self._jobs.get(request_id)
    return dataclasses.replace(record) if record is not None else None

  async def update_job(self, request_id: str, **fields: Any) -> JobRecord | None:
    async with self._lock:
      record = self._jobs.get(request_id)
      if record is None:
        return None
      if record.cancel_requested:
        fields.pop("cancel_requested", None)
      updated = dataclasses.replace(record, **fields)
      self._jobs[request_id] = updated
      if updated.is_terminal:
        self._retain_terminal(request_id)
      return dataclasses.replace(updated)

  def _retain_terminal(self, request_id: str) -> None:
    self._terminal[request_id] = None
    self._terminal.move_to_end(request_id)
    while len(self._terminal) > self._terminal_retention:
      evicted, _ = self._terminal.popitem(last=False)
      self._jobs.pop(evicted, None)
