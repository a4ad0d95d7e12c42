"""Request-scoped batch loader.

``load(key)`` never fetches directly.  It returns a future and puts the
key in a buffer; the first key buffered in an event-loop tick schedules
``dispatch`` with ``loop.call_soon``.  Every ``load`` issued before that
callback runs (all sibling resolvers started by the same ``gather``) is
therefore folded into one call of the batch function, which receives the
distinct keys and answers with a mapping.  Results are cached per key for
the lifetime of the loader, i.e. one request.

A batch function maps each key to its value or to a ``HolographError``
instance; keys it leaves out get the loader's default value.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Hashable
from collections.abc import Iterable
from collections.abc import Mapping
from time import perf_counter
from typing import Any
from typing import Generic
from typing import TypeVar

from holograph.errors import HolographError
from holograph.observability import record_batch
from holograph.observability import record_latency

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

BatchFn = Callable[[list[K]], Awaitable[Mapping[K, Any]]]

_MISSING = object()


class BatchLoader(Generic[K, V]):
    """Coalesces per-key lookups issued in one tick into one batched fetch."""

    def __init__(
        self,
        name: str,
        batch_fn: BatchFn,
        *,
        default: Callable[[], V | None] = lambda: None,
        max_batch_size: int | None = None,
    ) -> None:
        if max_batch_size is not None and max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        self.name = name
        self._batch_fn = batch_fn
        self._default = default
        self._max_batch_size = max_batch_size
        self._cache: dict[K, asyncio.Future[V]] = {}
        self._queue: list[K] = []
        self._scheduled = False
        self._tasks: set[asyncio.Task[None]] = set()
        self.dispatch_count = 0

    # -- registration --

    def load(self, key: K) -> asyncio.Future[V]:
        """Return a deferred handle for *key*'s value."""
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        loop = asyncio.get_running_loop()
        future: asyncio.Future[V] = loop.create_future()
        self._cache[key] = future
        self._queue.append(key)
        if not self._scheduled:
            self._scheduled = True
            loop.call_soon(self.dispatch)
        return future

    async def load_many(self, keys: Iterable[K]) -> list[V]:
        """Load several keys in the same tick and return values in order."""
        return list(await asyncio.gather(*(self.load(key) for key in keys)))

    def prime(self, key: K, value: V) -> None:
        """Seed the cache with an already-known value."""
        if key in self._cache:
            return
        future: asyncio.Future[V] = asyncio.get_running_loop().create_future()
        future.set_result(value)
        self._cache[key] = future

    # -- dispatch --

    @property
    def pending(self) -> int:
        return len(self._queue)

    def dispatch(self) -> None:
        """Flush the buffered keys now."""
        self._scheduled = False
        keys, self._queue = self._queue, []
        if not keys:
            return
        size = self._max_batch_size or len(keys)
        loop = asyncio.get_running_loop()
        for start in range(0, len(keys), size):
            task = loop.create_task(self._run_batch(keys[start : start + size]))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run_batch(self, keys: list[K]) -> None:
        self.dispatch_count += 1
        record_batch(loader=self.name, size=len(keys))
        logger.debug("loader=%s dispatch keys=%d", self.name, len(keys))
        start = perf_counter()
        ok = False
        try:
            results = await self._batch_fn(keys)
            ok = True
        except asyncio.CancelledError:
            for key in keys:
                self._cache[key].cancel()
            raise
        except Exception as exc:
            logger.warning(
                "loader=%s batch of %d key(s) failed: %s", self.name, len(keys), exc
            )
            for key in keys:
                future = self._cache[key]
                if not future.done():
                    future.set_exception(exc)
            return
        finally:
            record_latency(
                operation=f"loader.{self.name}",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

        for key in keys:
            future = self._cache[key]
            if future.done():
                continue
            value = results.get(key, _MISSING)
            if isinstance(value, HolographError):
                future.set_exception(value)
            elif value is _MISSING:
                future.set_result(self._default())
            else:
                future.set_result(value)
