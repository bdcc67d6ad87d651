import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, TypeVar

from feedstr.main.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_DONE = object()


@dataclass
class PoolStats:
    processed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.processed + self.failed


async def run_pool(
    records: Iterable[T],
    handler: Callable[[T], Awaitable[object]],
    max_workers: int,
) -> PoolStats:
    """Run ``handler`` over every record with at most ``max_workers`` in flight.

    Records go through one shared queue. Returns only after every worker has
    drained the queue and exited. A failing handler is logged and counted; it
    never stops the other records.
    """
    if max_workers <= 0:
        raise ValueError("max_workers must be greater than zero")

    queue: asyncio.Queue = asyncio.Queue()
    for record in records:
        queue.put_nowait(record)

    worker_count = min(max_workers, queue.qsize()) or 1
    for _ in range(worker_count):
        queue.put_nowait(_DONE)

    stats = PoolStats()

    async def worker(worker_id: int):
        while True:
            record = await queue.get()
            if record is _DONE:
                return
            try:
                await handler(record)
            except asyncio.CancelledError:
                raise
            except Exception:
                stats.failed += 1
                logger.exception(f"Worker {worker_id} failed to process record")
            else:
                stats.processed += 1

    await asyncio.gather(*(worker(i) for i in range(worker_count)))
    return stats
