"""
Coalescing batch processor.

Many independent ``await processor.add(item)`` calls, possibly from unrelated
requests, are grouped into fewer calls of one batch function. A batch is
flushed as soon as ``max_batch_size`` items are queued, or ``max_wait_time``
seconds after the first item entered an empty queue, whichever comes first.
A flush takes the whole queue; items added while it runs form the next batch.

Each processor owns its queue and timer. Build one per coalescing boundary
(e.g. one for Discogs release lookups) and pass it to whoever needs it.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, Set, Tuple, TypeVar

from plastik.core.exceptions import BatchContractError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class BatchProcessor(Generic[T, R]):
    """
    Args:
        process_fn: async callable taking the list of queued items and returning
            one result per item, in the same order.
        max_batch_size: flush immediately once this many items are queued.
        max_wait_time: seconds to wait for more items before flushing a partial batch.
        name: label used in log messages.
    """

    def __init__(
        self,
        process_fn: Callable[[List[T]], Awaitable[Sequence[R]]],
        max_batch_size: int = 10,
        max_wait_time: float = 1.0,
        name: str = "batch",
    ):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self.process_fn = process_fn
        self.max_batch_size = max_batch_size
        self.max_wait_time = max_wait_time
        self.name = name

        self._queue: List[Tuple[T, asyncio.Future]] = []
        self._processing = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of items waiting for the next flush."""
        return len(self._queue)

    async def add(self, item: T) -> R:
        """Queue one item and wait for its result from whichever batch carries it."""
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append((item, future))

        if len(self._queue) >= self.max_batch_size:
            self._schedule_flush()
        elif self._timer is None:
            self._timer = loop.call_later(self.max_wait_time, self._on_timer)

        return await future

    def _on_timer(self):
        self._timer = None
        self._schedule_flush()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule_flush(self):
        task = asyncio.get_running_loop().create_task(self._process())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process(self):
        # Only one flush at a time; anything queued meanwhile is picked up in `finally`.
        if self._processing or not self._queue:
            return

        self._processing = True
        self._cancel_timer()

        batch, self._queue = self._queue, []
        items = [item for item, _ in batch]
        logger.debug(f"[{self.name}] flushing {len(items)} item(s)")

        try:
            results = list(await self.process_fn(items))
            if len(results) != len(batch):
                raise BatchContractError(
                    f"[{self.name}] batch function returned {len(results)} results for {len(batch)} items"
                )
        except asyncio.CancelledError:
            for _, future in batch:
                if not future.done():
                    future.cancel()
            raise
        except Exception as e:
            logger.warning(f"[{self.name}] batch of {len(batch)} failed: {e}")
            for _, future in batch:
                if not future.done():
                    future.set_exception(e)
        else:
            for (_, future), result in zip(batch, results):
                # A caller that gave up has a cancelled future; the shared work still completes.
                if not future.done():
                    future.set_result(result)
        finally:
            self._processing = False
            if self._queue:
                self._schedule_flush()

    async def aclose(self):
        """Flush whatever is still queued and wait for in-flight batches."""
        self._cancel_timer()
        while self._queue or self._tasks:
            if self._queue and not self._processing:
                await self._process()
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
