"""Progressive partial-recipe cache backing status polling."""

from __future__ import annotations

import asyncio
import logging
import time
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from app.ai.pipeline.contracts import RecipeDraft

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class SnapshotStore(Protocol):
  """Shared primary tier; every call may raise when the store is unavailable."""

  async def read(self, request_id: str) -> dict[str, Any] | None:
    """Return the stored payload or None."""

  async def write(self, request_id: str, payload: dict[str, Any]) -> None:
    """Replace the stored payload."""

  async def delete(self, request_id: str) -> None:
    """Remove the payload; missing keys are not an error."""


@dataclass
class _LocalEntry:
  payload: dict[str, Any]
  stored_at: float


def _is_empty(value: Any) -> bool:
  return value is None or value == "" or value == [] or value == {}


def _merge_payload(previous: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
  """Overlay incoming on previous without regressing a set field to empty."""
  merged = dict(previous)
  for key, value in incoming.items():
    if key == "steps":
      merged[key] = _merge_steps(previous.get("steps") or [], value or [])
    elif not _is_empty(value) or _is_empty(previous.get(key)):
      merged[key] = value
  return merged


def _merge_steps(previous: list[dict[str, Any]], incoming: list[dict[str, Any]]) -> list[dict[str, Any]]:
  if not incoming:
    return previous
  steps: list[dict[str, Any]] = []
  for index, step in enumerate(incoming):
    prior = previous[index] if index < len(previous) else {}
    merged = dict(step)
    if merged.get("image_url") is None and prior.get("image_url") and prior.get("text") == step.get("text"):
      merged["image_url"] = prior["image_url"]
    steps.append(merged)
  return steps


class SnapshotCache:
  """
  Two-tier snapshot cache keyed by request id.

  Reads and writes go to the primary store first and fall back to a
  process-local map when it fails. Writes to one key are serialized.
  """

  def __init__(self, primary: SnapshotStore | None = None, *, ttl_seconds: float = 900, clock: Clock = time.monotonic) -> None:
    self._primary = primary
    self._local: dict[str, _LocalEntry] = {}
    # An entry disappears once no coroutine holds or waits on its lock.
    self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
    self._ttl_seconds = ttl_seconds
    self._clock = clock

  def _lock(self, request_id: str) -> asyncio.Lock:
    lock = self._locks.get(request_id)
    if lock is None:
      lock = asyncio.Lock()
      self._locks[request_id] = lock
    return lock

  def _sweep(self) -> None:
    cutoff = self._clock() - self._ttl_seconds
    for request_id in [key for key, entry in self._local.items() if entry.stored_at < cutoff]:
      del self._local[request_id]

  async def _read(self, request_id: str) -> dict[str, Any] | None:
    self._sweep()
    if self._primary is not None:
      try:
        payload = await self._primary.read(request_id)
        if payload is not None:
          return payload
      except Exception as exc:  # noqa: BLE001
        logger.warning("Snapshot primary read failed for %s; using local map: %s", request_id, exc)
    entry = self._local.get(request_id)
    return dict(entry.payload) if entry is not None else None

  async def _write(self, request_id: str, payload: dict[str, Any]) -> None:
    if self._primary is not None:
      try:
        await self._primary.write(request_id, payload)
        # A newer primary copy supersedes any fallback copy.
        self._local.pop(request_id, None)
        return
      except Exception as exc:  # noqa: BLE001
        logger.warning("Snapshot primary write failed for %s; using local map: %s", request_id, exc)
    self._local[request_id] = _LocalEntry(payload=payload, stored_at=self._clock())

  async def put(self, request_id: str, draft: RecipeDraft) -> None:
    """Store the draft, keeping previously set fields the draft leaves empty."""
    incoming = draft.model_dump(mode="json")
    async with self._lock(request_id):
      previous = await self._read(request_id)
      payload = _merge_payload(previous, incoming) if previous else incoming
      await self._write(request_id, payload)

  async def put_step_result(self, request_id: str, step_index: int, image_url: str | None) -> bool:
    """Record one step's image outcome; None marks the step as tried and failed."""
    async with self._lock(request_id):
      payload = await self._read(request_id)
      if payload is None:
        return False
      steps = list(payload.get("steps") or [])
      if not 0 <= step_index < len(steps):
        logger.warning("Snapshot for %s has no step %d; ignoring image result", request_id, step_index)
        return False
      step = dict(steps[step_index])
      step["image_url"] = image_url
      steps[step_index] = step
      payload["steps"] = steps
      await self._write(request_id, payload)
      return True

  async def get(self, request_id: str) -> RecipeDraft | None:
    payload = await self._read(request_id)
    if payload is None:
      return None
    return RecipeDraft.model_validate(payload)

  async def clear(self, request_id: str) -> None:
    """Remove the snapshot from both tiers; safe to call repeatedly."""
    async with self._lock(request_id):
      self._local.pop(request_id, None)
      if self._primary is not None:
        try:
          await self._primary.delete(request_id)
        except Exception as exc:  # noqa: BLE001
          logger.warning("Snapshot primary delete failed for %s: %s", request_id, exc)
