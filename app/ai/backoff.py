"""Bounded retry loop with exponential, unjittered backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, *, base_seconds: float = 1.0) -> float:
  """Return the wait before a 1-based attempt: 0, then 2s, 4s, ... at base 1."""
  if attempt <= 1:
    return 0.0
  return base_seconds * (2 ** (attempt - 1))


async def retry_phase(func: Callable[[], Awaitable[T]], *, phase: str, attempts: int = 3, base_seconds: float = 1.0, sleep: Sleep = asyncio.sleep, label: str = "") -> T:
  """
  Run one sub-job phase with its own retry budget.

  Delays at the default base: 2s before attempt 2, 4s before attempt 3.
  The last error is re-raised once the budget is spent.
  """
  if attempts < 1:
    raise ValueError("attempts must be at least 1")

  last_error: Exception | None = None
  for attempt in range(1, attempts + 1):
    delay = backoff_delay(attempt, base_seconds=base_seconds)
    if delay > 0:
      await sleep(delay)
    try:
      return await func()
    except asyncio.CancelledError:
      raise
    except Exception as e:  # noqa: BLE001
      last_error = e
      if attempt < attempts:
        logger.warning(f"{label} {phase} attempt {attempt}/{attempts} failed: {e}. Retrying in {backoff_delay(attempt + 1, base_seconds=base_seconds)}s...")
      else:
        logger.error(f"{label} {phase} exhausted {attempts} attempts: {e}")

  assert last_error is not None
  raise last_error
