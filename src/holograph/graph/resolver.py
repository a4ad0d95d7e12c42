"""Relationship resolver.

Every relationship is answered through a request-scoped batch loader, so
resolving ``starships`` for N characters in one request issues one store
fetch, not N.  To-many results are lists sorted by a fixed key with the id
as tie-breaker; to-one results are an entity or ``None``; ``killCount`` is
recounted from KillEvent rows.

A parent id that does not exist fails only that field with ``NotFound``.
"""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Any

from holograph.errors import NotFound
from holograph.graph.context import RequestContext
from holograph.graph.context import StoreBatchFn
from holograph.graph.loader import BatchLoader
from holograph.models.edges import EDGE_SPECS
from holograph.models.edges import EdgeSide
from holograph.models.edges import EdgeType
from holograph.models.entities import Character
from holograph.models.entities import EntityType
from holograph.models.entities import Film
from holograph.models.entities import id_sort_key
from holograph.models.entities import KillEvent
from holograph.observability import record_latency
from holograph.store.base import StoreReader

# ---------------------------------------------------------------------------
# Relationship table
# ---------------------------------------------------------------------------


class RelationshipKind(str, Enum):
    """Cardinality of a relationship field."""

    to_one = "to_one"
    to_many = "to_many"
    aggregate = "aggregate"


@dataclass(frozen=True)
class Relationship:
    """One resolvable relationship field."""

    parent_type: EntityType
    name: str
    kind: RelationshipKind
    target_type: EntityType | None = None


RELATIONSHIPS: dict[tuple[EntityType, str], Relationship] = {
    (r.parent_type, r.name): r
    for r in (
        Relationship(EntityType.character, "homeworld", RelationshipKind.to_one, EntityType.planet),
        Relationship(EntityType.character, "starships", RelationshipKind.to_many, EntityType.starship),
        Relationship(EntityType.character, "films", RelationshipKind.to_many, EntityType.film),
        Relationship(EntityType.character, "kills", RelationshipKind.to_many, EntityType.kill_event),
        Relationship(EntityType.character, "death", RelationshipKind.to_one, EntityType.kill_event),
        Relationship(EntityType.character, "killCount", RelationshipKind.aggregate),
        Relationship(EntityType.planet, "residents", RelationshipKind.to_many, EntityType.character),
        Relationship(EntityType.starship, "pilots", RelationshipKind.to_many, EntityType.character),
        Relationship(EntityType.film, "characters", RelationshipKind.to_many, EntityType.character),
        Relationship(EntityType.kill_event, "killer", RelationshipKind.to_one, EntityType.character),
        Relationship(EntityType.kill_event, "victim", RelationshipKind.to_one, EntityType.character),
    )
}


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------


def by_id(row: Any) -> tuple:
    return id_sort_key(row.id)


def by_name(row: Character) -> tuple:
    return (row.name, id_sort_key(row.id))


def by_episode(row: Film) -> tuple:
    return (row.episode_id, id_sort_key(row.id))


def by_occurrence(row: KillEvent) -> tuple:
    # undated events sort last
    return (row.occurred_at is None, row.occurred_at or "", id_sort_key(row.id))


# ---------------------------------------------------------------------------
# Batch functions (store, parent ids) -> {parent id: value | NotFound}
# ---------------------------------------------------------------------------


def entity_batch(entity_type: EntityType) -> StoreBatchFn:
    """Rows by id; absent ids map to ``NotFound``."""

    async def batch(store: StoreReader, ids: list[str]) -> Mapping[str, Any]:
        rows = await store.get_many(entity_type, ids)
        return {
            eid: rows[eid] if eid in rows else NotFound(entity_type.value, eid)
            for eid in ids
        }

    return batch


def edge_batch(
    edge_type: EdgeType,
    side: EdgeSide,
    order: Callable[[Any], tuple],
) -> StoreBatchFn:
    """Rows on the far side of an edge table, looked up from *side*."""
    spec = EDGE_SPECS[edge_type]
    parent_type = spec.side_type(side)
    target_type = spec.side_type(side.opposite)

    async def batch(store: StoreReader, ids: list[str]) -> Mapping[str, Any]:
        parents = await store.get_many(parent_type, ids)
        linked = await store.neighbors(edge_type, list(parents), side)
        wanted = {tid for tids in linked.values() for tid in tids}
        targets = await store.get_many(target_type, wanted)
        result: dict[str, Any] = {}
        for pid in ids:
            if pid not in parents:
                result[pid] = NotFound(parent_type.value, pid)
                continue
            rows = [targets[tid] for tid in linked.get(pid, ()) if tid in targets]
            result[pid] = sorted(rows, key=order)
        return result

    return batch


def foreign_key_batch(
    parent_type: EntityType,
    child_type: EntityType,
    field_name: str,
    order: Callable[[Any], tuple],
) -> StoreBatchFn:
    """Child rows whose *field_name* points at each parent."""

    async def batch(store: StoreReader, ids: list[str]) -> Mapping[str, Any]:
        parents = await store.get_many(parent_type, ids)
        keys = set(parents)
        children = await store.find_by_predicate(
            child_type, lambda row: getattr(row, field_name) in keys
        )
        grouped: dict[str, list[Any]] = {pid: [] for pid in parents}
        for child in children:
            grouped[getattr(child, field_name)].append(child)
        return {
            pid: sorted(grouped[pid], key=order)
            if pid in parents
            else NotFound(parent_type.value, pid)
            for pid in ids
        }

    return batch


async def _death_batch(store: StoreReader, ids: list[str]) -> Mapping[str, Any]:
    characters = await store.get_many(EntityType.character, ids)
    keys = set(characters)
    kills = await store.find_by_predicate(
        EntityType.kill_event, lambda row: row.victim_id in keys
    )
    deaths = {kill.victim_id: kill for kill in kills}
    return {
        cid: deaths.get(cid) if cid in characters else NotFound(EntityType.character.value, cid)
        for cid in ids
    }


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

Handler = Callable[[str, RequestContext], Awaitable[Any]]


class RelationshipResolver:
    """Resolves relationship fields of one parent at a time, batched per request."""

    def __init__(self) -> None:
        self._handlers: dict[tuple[EntityType, str], Handler] = {
            (EntityType.character, "homeworld"): self._homeworld,
            (EntityType.character, "starships"): self._many(
                "character.starships", edge_batch(EdgeType.pilots, EdgeSide.left, by_id)
            ),
            (EntityType.character, "films"): self._many(
                "character.films", edge_batch(EdgeType.appears_in, EdgeSide.left, by_episode)
            ),
            (EntityType.character, "kills"): self._kills,
            (EntityType.character, "death"): self._death,
            (EntityType.character, "killCount"): self._kill_count,
            (EntityType.planet, "residents"): self._many(
                "planet.residents",
                foreign_key_batch(
                    EntityType.planet, EntityType.character, "homeworld_id", by_name
                ),
            ),
            (EntityType.starship, "pilots"): self._many(
                "starship.pilots", edge_batch(EdgeType.pilots, EdgeSide.right, by_name)
            ),
            (EntityType.film, "characters"): self._many(
                "film.characters", edge_batch(EdgeType.appears_in, EdgeSide.right, by_name)
            ),
            (EntityType.kill_event, "killer"): self._kill_party("killer_id"),
            (EntityType.kill_event, "victim"): self._kill_party("victim_id"),
        }

    @staticmethod
    def relationship(parent_type: EntityType, name: str) -> Relationship | None:
        return RELATIONSHIPS.get((parent_type, name))

    async def resolve(
        self,
        parent_type: EntityType,
        parent_id: str,
        relationship_name: str,
        context: RequestContext,
    ) -> Any:
        """Resolve one relationship of one parent.

        Returns a list for to-many relations, an entity or ``None`` for
        to-one relations and an ``int`` for aggregates.  Raises
        ``NotFound`` when the parent is absent.
        """
        handler = self._handlers.get((parent_type, relationship_name))
        if handler is None:
            raise ValueError(
                f"{parent_type.value} has no relationship {relationship_name!r}"
            )
        start = perf_counter()
        ok = False
        try:
            value = await handler(parent_id, context)
            ok = True
            return value
        finally:
            record_latency(
                operation=f"resolve.{parent_type.value}.{relationship_name}",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    # -- loaders --

    @staticmethod
    def entities(context: RequestContext, entity_type: EntityType) -> BatchLoader[str, Any]:
        """Request loader returning rows of *entity_type* by id."""
        return context.loader(f"entity.{entity_type.value}", entity_batch(entity_type))

    @staticmethod
    def _kills_loader(context: RequestContext) -> BatchLoader[str, Any]:
        return context.loader(
            "character.kills",
            foreign_key_batch(
                EntityType.character, EntityType.kill_event, "killer_id", by_occurrence
            ),
            default=list,
        )

    # -- handlers --

    def _many(self, name: str, batch_fn: StoreBatchFn) -> Handler:
        async def handler(parent_id: str, context: RequestContext) -> list[Any]:
            return await context.loader(name, batch_fn, default=list).load(parent_id)

        return handler

    async def _homeworld(self, parent_id: str, context: RequestContext) -> Any:
        character = await self.entities(context, EntityType.character).load(parent_id)
        if character.homeworld_id is None:
            return None
        return await self.entities(context, EntityType.planet).load(character.homeworld_id)

    async def _kills(self, parent_id: str, context: RequestContext) -> list[Any]:
        return await self._kills_loader(context).load(parent_id)

    async def _kill_count(self, parent_id: str, context: RequestContext) -> int:
        return len(await self._kills_loader(context).load(parent_id))

    async def _death(self, parent_id: str, context: RequestContext) -> Any:
        return await context.loader("character.death", _death_batch).load(parent_id)

    def _kill_party(self, field_name: str) -> Handler:
        async def handler(parent_id: str, context: RequestContext) -> Any:
            kill = await self.entities(context, EntityType.kill_event).load(parent_id)
            return await self.entities(context, EntityType.character).load(
                getattr(kill, field_name)
            )

        return handler
