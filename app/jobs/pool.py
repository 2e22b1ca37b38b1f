"""Bounded asyncio worker pools fed by a queue."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

_Work = tuple[Callable[[], Awaitable[Any]], asyncio.Future]


class PoolClosedError(RuntimeError):
  """Raised when work is submitted to a pool that has been shut down."""


class WorkerPool:
  """
  Fixed number of worker tasks draining a FIFO queue.

  `submit` enqueues a coroutine factory and returns a future that resolves
  with its result or exception, so callers can join on many handles
  without polling.
  """

  def __init__(self, name: str, concurrency: int) -> None:
    if concurrency < 1:
      raise ValueError("concurrency must be at least 1")
    self.name = name
    self.concurrency = concurrency
    self._queue: asyncio.Queue[_Work | None] = asyncio.Queue()
    self._workers: list[asyncio.Task] = []
    self._closed = False

  def start(self) -> None:
    if self._workers:
      return
    self._closed = False
    self._workers = [asyncio.create_task(self._worker(index), name=f"{self.name}-worker-{index}") for index in range(self.concurrency)]
    logger.info("Worker pool %s started with %d workers", self.name, self.concurrency)

  def submit(self, factory: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
    if self._closed:
      raise PoolClosedError(f"Worker pool {self.name} is closed.")
    if not self._workers:
      self.start()
    future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
    self._queue.put_nowait((factory, future))
    return future

  async def _worker(self, index: int) -> None:
    while True:
      item = await self._queue.get()
      try:
        if item is None:
          return
        factory, future = item
        if future.cancelled():
          continue
        try:
          result = await factory()
        except asyncio.CancelledError:
          if not future.done():
            future.cancel()
          raise
        except Exception as exc:  # noqa: BLE001
          if not future.done():
            future.set_exception(exc)
        else:
          if not future.done():
            future.set_result(result)
      finally:
        self._queue.task_done()

  async def shutdown(self, *, drain: bool = True) -> None:
    """Stop the workers; with drain, queued work finishes first."""
    if self._closed and not self._workers:
      return
    self._closed = True
    if not drain:
      while not self._queue.empty():
        item = self._queue.get_nowait()
        if item is not None:
          item[1].cancel()
        self._queue.task_done()
    for _ in self._workers:
      self._queue.put_nowait(None)
    if self._workers:
      await asyncio.gather(*self._workers, return_exceptions=True)
    self._workers = []
    logger.info("Worker pool %s stopped", self.name)
