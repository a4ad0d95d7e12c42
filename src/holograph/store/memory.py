"""In-memory entity store with shadow-copy transactions.

Rows live in one dict per entity type.  Each many-to-many edge type is a
single set of ``(left_id, right_id)`` pairs with forward and reverse
indexes derived from it, so both sides of a relation always read the same
table and ``add_edge`` is the only way to change it.

A transaction works on a copy of the committed state.  Commit publishes
the copy with a single reference assignment, so readers observe either the
whole mutation or none of it; rollback just drops the copy.  Writers are
serialized by a store-level ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from collections.abc import Iterable
from collections.abc import Mapping
from contextlib import asynccontextmanager
from typing import Any

from holograph.config import MutationConfig
from holograph.errors import ConflictRetryable
from holograph.errors import NotFound
from holograph.errors import StoreUnavailable
from holograph.errors import ValidationFailed
from holograph.models.edges import EDGE_SPECS
from holograph.models.edges import EdgeSide
from holograph.models.edges import EdgeType
from holograph.models.entities import EntityBase
from holograph.models.entities import EntityType
from holograph.models.entities import id_sort_key
from holograph.models.entities import TYPE_TO_MODEL
from holograph.store.base import Predicate
from holograph.store.base import StoreSnapshot

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------


class _StoreState:
    """Rows, edge tables and id counters for one version of the store."""

    __slots__ = ("rows", "edges", "forward", "reverse", "next_ids", "version")

    def __init__(self) -> None:
        self.rows: dict[EntityType, dict[str, EntityBase]] = {t: {} for t in EntityType}
        self.edges: dict[EdgeType, set[tuple[str, str]]] = {e: set() for e in EdgeType}
        self.forward: dict[EdgeType, dict[str, set[str]]] = {e: {} for e in EdgeType}
        self.reverse: dict[EdgeType, dict[str, set[str]]] = {e: {} for e in EdgeType}
        self.next_ids: dict[EntityType, int] = {t: 1 for t in EntityType}
        self.version = 0

    def copy(self) -> _StoreState:
        # Rows are frozen models, so copying the containers is enough.
        clone = _StoreState()
        clone.rows = {t: dict(rows) for t, rows in self.rows.items()}
        clone.edges = {e: set(pairs) for e, pairs in self.edges.items()}
        clone.forward = {
            e: {k: set(v) for k, v in index.items()} for e, index in self.forward.items()
        }
        clone.reverse = {
            e: {k: set(v) for k, v in index.items()} for e, index in self.reverse.items()
        }
        clone.next_ids = dict(self.next_ids)
        clone.version = self.version
        return clone

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            rows={t: dict(rows) for t, rows in self.rows.items()},
            edges={e: frozenset(pairs) for e, pairs in self.edges.items()},
            forward={
                e: {k: frozenset(v) for k, v in index.items()}
                for e, index in self.forward.items()
            },
            reverse={
                e: {k: frozenset(v) for k, v in index.items()}
                for e, index in self.reverse.items()
            },
            version=self.version,
        )

    def put_row(self, row: EntityBase) -> None:
        entity_type = row.entity_type
        self.rows[entity_type][row.id] = row
        if row.id.isdigit():
            self.next_ids[entity_type] = max(self.next_ids[entity_type], int(row.id) + 1)

    def allocate_id(self, entity_type: EntityType) -> str:
        rows = self.rows[entity_type]
        candidate = self.next_ids[entity_type]
        while str(candidate) in rows:
            candidate += 1
        self.next_ids[entity_type] = candidate + 1
        return str(candidate)

    def link(self, edge_type: EdgeType, left_id: str, right_id: str) -> bool:
        pair = (left_id, right_id)
        pairs = self.edges[edge_type]
        if pair in pairs:
            return False
        pairs.add(pair)
        self.forward[edge_type].setdefault(left_id, set()).add(right_id)
        self.reverse[edge_type].setdefault(right_id, set()).add(left_id)
        return True


# ---------------------------------------------------------------------------
# Shared read path
# ---------------------------------------------------------------------------


class _StateReader:
    """Read operations over whichever state the subclass exposes."""

    def _read_state(self) -> _StoreState:
        raise NotImplementedError

    async def get_by_id(self, entity_type: EntityType, entity_id: str) -> Any | None:
        return self._read_state().rows[entity_type].get(entity_id)

    async def get_many(
        self, entity_type: EntityType, entity_ids: Iterable[str]
    ) -> dict[str, Any]:
        rows = self._read_state().rows[entity_type]
        return {eid: rows[eid] for eid in dict.fromkeys(entity_ids) if eid in rows}

    async def list(self, entity_type: EntityType) -> list[Any]:
        rows = self._read_state().rows[entity_type]
        return [rows[eid] for eid in sorted(rows, key=id_sort_key)]

    async def find_by_predicate(
        self, entity_type: EntityType, predicate: Predicate
    ) -> list[Any]:
        rows = self._read_state().rows[entity_type]
        return [rows[eid] for eid in sorted(rows, key=id_sort_key) if predicate(rows[eid])]

    async def neighbors(
        self,
        edge_type: EdgeType,
        entity_ids: Iterable[str],
        side: EdgeSide,
    ) -> dict[str, frozenset[str]]:
        state = self._read_state()
        index = state.forward[edge_type] if side is EdgeSide.left else state.reverse[edge_type]
        return {eid: frozenset(index.get(eid, ())) for eid in dict.fromkeys(entity_ids)}


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------


class InMemoryTransaction(_StateReader):
    """Unit of work over a private copy of the committed state."""

    def __init__(self, store: InMemoryEntityStore, working: _StoreState) -> None:
        self._store = store
        self._working = working
        self._active = True
        self.writes = 0

    def _read_state(self) -> _StoreState:
        if not self._active:
            raise RuntimeError("transaction is no longer active")
        self._store._check_open()
        return self._working

    async def insert(self, entity_type: EntityType, record: Mapping[str, Any]) -> str:
        if "id" in record:
            raise ValueError("insert assigns ids; record must not carry one")
        state = self._read_state()
        new_id = state.allocate_id(entity_type)
        row = TYPE_TO_MODEL[entity_type].model_validate({**record, "id": new_id})
        state.put_row(row)
        self.writes += 1
        return new_id

    async def add_edge(self, edge_type: EdgeType, left_id: str, right_id: str) -> bool:
        state = self._read_state()
        spec = EDGE_SPECS[edge_type]
        for entity_type, entity_id in ((spec.left, left_id), (spec.right, right_id)):
            if entity_id not in state.rows[entity_type]:
                raise NotFound(entity_type.value, entity_id)
        created = state.link(edge_type, left_id, right_id)
        if created:
            self.writes += 1
        return created

    async def update_scalar(
        self,
        entity_type: EntityType,
        entity_id: str,
        field_name: str,
        value: Any,
    ) -> Any | None:
        from holograph.mutations.invariants import check_known_field
        from holograph.mutations.invariants import check_mutable

        violation = check_mutable(entity_type) or check_known_field(entity_type, field_name)
        if violation:
            raise ValidationFailed([violation])
        state = self._read_state()
        row = state.rows[entity_type].get(entity_id)
        if row is None:
            return None
        updated = TYPE_TO_MODEL[entity_type].model_validate(
            {**row.model_dump(), field_name: value}
        )
        state.rows[entity_type][entity_id] = updated
        self.writes += 1
        return updated

    def rollback(self) -> None:
        """Drop every write so far; a clean exit then commits nothing."""
        self._working = self._store._read_state().copy()
        self.writes = 0

    def _close(self) -> _StoreState:
        self._active = False
        return self._working


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class InMemoryEntityStore(_StateReader):
    """Process-local ``EntityStore`` implementation."""

    def __init__(self, *, config: MutationConfig | None = None) -> None:
        self._config = config or MutationConfig()
        self._state = _StoreState()
        self._write_lock = asyncio.Lock()
        self._closed = False

    @classmethod
    def from_records(
        cls,
        *,
        characters: Iterable[Mapping[str, Any]] = (),
        planets: Iterable[Mapping[str, Any]] = (),
        starships: Iterable[Mapping[str, Any]] = (),
        films: Iterable[Mapping[str, Any]] = (),
        kills: Iterable[Mapping[str, Any]] = (),
        config: MutationConfig | None = None,
    ) -> InMemoryEntityStore:
        """Bootstrap a store from plain records.

        Character records may list ``starships`` and ``films`` ids; starship
        records may list ``pilots``.  The result is checked against every
        store invariant and rejected with ``ValidationFailed`` if any fails.
        """
        from holograph.mutations.invariants import check_store_consistency

        store = cls(config=config)
        state = store._state
        links: list[tuple[EdgeType, str, str]] = []
        for entity_type, records in (
            (EntityType.planet, planets),
            (EntityType.starship, starships),
            (EntityType.film, films),
            (EntityType.character, characters),
            (EntityType.kill_event, kills),
        ):
            for record in records:
                data = dict(record)
                if entity_type is EntityType.character:
                    if "homeworld" in data:
                        data.setdefault("homeworld_id", data.pop("homeworld"))
                    for sid in data.pop("starships", ()):
                        links.append((EdgeType.pilots, data["id"], sid))
                    for fid in data.pop("films", ()):
                        links.append((EdgeType.appears_in, data["id"], fid))
                elif entity_type is EntityType.starship:
                    for cid in data.pop("pilots", ()):
                        links.append((EdgeType.pilots, cid, data["id"]))
                elif entity_type is EntityType.planet:
                    # residents are derived from Character.homeworld_id
                    data.pop("residents", None)
                elif entity_type is EntityType.film:
                    data.pop("characters", None)
                data["id"] = str(data["id"])
                row = TYPE_TO_MODEL[entity_type].model_validate(data)
                if row.id in state.rows[entity_type]:
                    raise ValueError(f"duplicate {entity_type.value} id {row.id!r}")
                state.put_row(row)
        for edge_type, left_id, right_id in links:
            state.link(edge_type, str(left_id), str(right_id))

        violations = check_store_consistency(state.snapshot())
        if violations:
            raise ValidationFailed(violations)
        logger.info(
            "store seeded rows=%d edges=%d",
            sum(len(rows) for rows in state.rows.values()),
            sum(len(pairs) for pairs in state.edges.values()),
        )
        return store

    # ----- lifecycle -----

    def _check_open(self) -> None:
        if self._closed:
            raise StoreUnavailable("entity store is closed")

    def _read_state(self) -> _StoreState:
        self._check_open()
        return self._state

    @property
    def version(self) -> int:
        return self._state.version

    async def close(self) -> None:
        self._closed = True

    async def snapshot(self) -> StoreSnapshot:
        return self._read_state().snapshot()

    # ----- unit of work -----

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryTransaction]:
        """Yield a transaction; commit on clean exit, discard on error."""
        self._check_open()
        # Lock.acquire handles its own cancellation, so a timeout never leaks the lock
        try:
            async with asyncio.timeout(self._config.lock_timeout_seconds):
                await self._write_lock.acquire()
        except TimeoutError:
            logger.warning(
                "store write lock not acquired within %.3fs",
                self._config.lock_timeout_seconds,
            )
            raise ConflictRetryable(
                "another mutation is in progress; retry",
                details={"lock_timeout_seconds": self._config.lock_timeout_seconds},
            ) from None

        try:
            tx = InMemoryTransaction(self, self._state.copy())
            try:
                yield tx
            except BaseException:
                tx._close()
                logger.debug("transaction rolled back at version=%d", self._state.version)
                raise
            working = tx._close()
            self._check_open()
            if tx.writes:
                working.version = self._state.version + 1
                self._state = working
                logger.debug("transaction committed version=%d", working.version)
        finally:
            self._write_lock.release()
