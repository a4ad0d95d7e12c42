"""Per-request state: the store view and the request's batch loaders."""

from __future__ import annotations

import uuid
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from typing import Any

from holograph.config import LoaderConfig
from holograph.graph.loader import BatchLoader
from holograph.store.base import StoreReader

StoreBatchFn = Callable[[StoreReader, list[str]], Awaitable[Mapping[str, Any]]]


class RequestContext:
    """Holds one request's loaders; build a new one for every request.

    Nothing here outlives the request, so abandoning a request only means
    dropping its context.
    """

    def __init__(
        self,
        store: StoreReader,
        *,
        config: LoaderConfig | None = None,
        request_id: str | None = None,
    ) -> None:
        self.store = store
        self.config = config or LoaderConfig()
        self.request_id = request_id or f"req_{uuid.uuid4().hex}"
        self._loaders: dict[str, BatchLoader[str, Any]] = {}

    def loader(
        self,
        name: str,
        batch_fn: StoreBatchFn,
        *,
        default: Callable[[], Any] = lambda: None,
    ) -> BatchLoader[str, Any]:
        """Return the loader registered under *name*, creating it on first use."""
        existing = self._loaders.get(name)
        if existing is not None:
            return existing

        async def _bound(keys: list[str]) -> Mapping[str, Any]:
            return await batch_fn(self.store, keys)

        created: BatchLoader[str, Any] = BatchLoader(
            name,
            _bound,
            default=default,
            max_batch_size=self.config.max_batch_size,
        )
        self._loaders[name] = created
        return created

    def get_loader(self, name: str) -> BatchLoader[str, Any] | None:
        return self._loaders.get(name)

    def dispatch_counts(self) -> dict[str, int]:
        """Number of batched fetches each loader issued in this request."""
        return {name: loader.dispatch_count for name, loader in sorted(self._loaders.items())}
