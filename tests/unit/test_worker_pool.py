from __future__ import annotations

import asyncio

import pytest

from app.jobs.pool import PoolClosedError, WorkerPool


@pytest.mark.anyio
async def test_pool_bounds_concurrency_and_resolves_futures() -> None:
  pool = WorkerPool("test", 2)
  running = 0
  peak = 0

  async def work(value: int) -> int:
    nonlocal running, peak
    running += 1
    peak = max(peak, running)
    await asyncio.sleep(0)
    running -= 1
    return value * 10

  futures = [pool.submit(lambda value=value: work(value)) for value in range(5)]
  results = await asyncio.gather(*futures)
  await pool.shutdown()

  assert results == [0, 10, 20, 30, 40]
  assert peak <= 2


@pytest.mark.anyio
async def test_errors_resolve_the_future_without_killing_workers() -> None:
  pool = WorkerPool("test", 1)

  async def boom() -> None:
    raise RuntimeError("boom")

  async def fine() -> str:
    return "fine"

  failing = pool.submit(boom)
  succeeding = pool.submit(fine)

  with pytest.raises(RuntimeError):
    await failing
  assert await succeeding == "fine"
  await pool.shutdown()


@pytest.mark.anyio
async def test_shutdown_rejects_new_work_and_can_drop_queued_items() -> None:
  pool = WorkerPool("test", 1)
  gate = asyncio.Event()

  async def blocked() -> None:
    await gate.wait()

  first = pool.submit(blocked)
  queued = pool.submit(blocked)
  await asyncio.sleep(0)

  shutdown = asyncio.create_task(pool.shutdown(drain=False))
  await asyncio.sleep(0)
  gate.set()
  await shutdown

  assert first.done() and not first.cancelled()
  assert queued.cancelled()
  with pytest.raises(PoolClosedError):
    pool.submit(blocked)


def test_concurrency_must_be_positive() -> None:
  with pytest.raises(ValueError):
    WorkerPool("test", 0)
