"""Storage protocol consumed by the resolver and the mutation coordinator.

Any backend (in-memory, relational, remote) must expose these async
operations plus a transactional unit of work.  Reads return ``None`` for
absent rows; callers decide whether that is a ``NotFound``.
"""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any
from typing import Protocol

from holograph.models.edges import EdgeSide
from holograph.models.edges import EdgeType
from holograph.models.entities import EntityBase
from holograph.models.entities import EntityType

Predicate = Callable[[Any], bool]


@dataclass(frozen=True)
class StoreSnapshot:
    """Point-in-time copy of the committed store state.

    ``edges`` holds the authoritative pair table per edge type;
    ``forward`` (left id → right ids) and ``reverse`` (right id → left ids)
    are the direction indexes derived from it.
    """

    rows: dict[EntityType, dict[str, EntityBase]]
    edges: dict[EdgeType, frozenset[tuple[str, str]]]
    forward: dict[EdgeType, dict[str, frozenset[str]]]
    reverse: dict[EdgeType, dict[str, frozenset[str]]]
    version: int = 0

    def same_state(self, other: StoreSnapshot) -> bool:
        """Compare contents, ignoring the commit version."""
        return (
            self.rows == other.rows
            and self.edges == other.edges
            and self.forward == other.forward
            and self.reverse == other.reverse
        )


class StoreReader(Protocol):
    """Read operations shared by the store and its transactions."""

    async def get_by_id(self, entity_type: EntityType, entity_id: str) -> Any | None:
        """Return one row, or ``None`` if absent."""

    async def get_many(
        self, entity_type: EntityType, entity_ids: Iterable[str]
    ) -> dict[str, Any]:
        """Return the present rows among *entity_ids*, keyed by id."""

    async def list(self, entity_type: EntityType) -> list[Any]:
        """Return every row of a type, ordered by id."""

    async def find_by_predicate(
        self, entity_type: EntityType, predicate: Predicate
    ) -> list[Any]:
        """Return the rows of a type matching *predicate*, ordered by id."""

    async def neighbors(
        self,
        edge_type: EdgeType,
        entity_ids: Iterable[str],
        side: EdgeSide,
    ) -> dict[str, frozenset[str]]:
        """Map each id on *side* to the ids linked to it on the other side."""


class StoreTransaction(StoreReader, Protocol):
    """Unit of work; writes are invisible to other readers until commit."""

    async def insert(self, entity_type: EntityType, record: Mapping[str, Any]) -> str:
        """Insert a row under a fresh id and return the id."""

    async def add_edge(self, edge_type: EdgeType, left_id: str, right_id: str) -> bool:
        """Link two rows; return ``False`` if the edge already existed."""

    async def update_scalar(
        self,
        entity_type: EntityType,
        entity_id: str,
        field_name: str,
        value: Any,
    ) -> Any | None:
        """Set one field and return the updated row, or ``None`` if absent."""

    def rollback(self) -> None:
        """Discard the writes made so far without leaving the unit of work."""


class EntityStore(StoreReader, Protocol):
    """Authoritative owner of every entity and edge."""

    @property
    def version(self) -> int:
        """Number of committed write transactions."""

    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        """Begin a unit of work: commit on clean exit, roll back on error."""

    async def snapshot(self) -> StoreSnapshot:
        """Return a copy of the committed state."""

    async def close(self) -> None:
        """Release the backend; later calls raise ``StoreUnavailable``."""
