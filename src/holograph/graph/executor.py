"""Query executor — runs one operation and walks the requested field tree.

The selection is a pre-validated mapping of field name to sub-selection
(``None`` for scalars, or for an entity to get all of its scalars)::

    {"name": None, "homeworld": {"name": None}, "starships": {"name": None}}

Sibling fields and list items are resolved concurrently, so every parent
at the same depth registers with the request's loaders in the same tick
and each relationship costs one batched fetch per level.

Errors are field-scoped: a ``HolographError`` on one field becomes a
``FieldError`` at that path with ``None`` as the value, and the rest of the
tree still resolves.  ``StoreUnavailable`` aborts the request.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from time import perf_counter
from typing import Any
from typing import Union

from pydantic import BaseModel
from pydantic import Field

from holograph.config import LoaderConfig
from holograph.errors import HolographError
from holograph.errors import StoreUnavailable
from holograph.graph.context import RequestContext
from holograph.graph.resolver import by_episode
from holograph.graph.resolver import by_name
from holograph.graph.resolver import by_occurrence
from holograph.graph.resolver import RelationshipKind
from holograph.graph.resolver import RelationshipResolver
from holograph.models.entities import EntityBase
from holograph.models.entities import EntityType
from holograph.models.entities import TYPE_TO_MODEL
from holograph.mutations.coordinator import MutationCoordinator
from holograph.observability import record_latency
from holograph.store.base import EntityStore

logger = logging.getLogger(__name__)

Selection = Mapping[str, Union["Selection", None]]
Path = list[str | int]

# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class FieldError(BaseModel):
    """An error attached to one field of the response tree."""

    path: list[str | int] = Field(description="Field path from the operation root.")
    code: str = Field(description="Stable machine-readable error code.")
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ExecutionResult(BaseModel):
    """Resolved data plus every field-scoped error."""

    data: dict[str, Any] | None = None
    errors: list[FieldError] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _field_error(path: Path, exc: HolographError) -> FieldError:
    return FieldError(path=list(path), code=exc.code, message=exc.message, details=exc.details)


RootResult = tuple[EntityType, Any]
RootHandler = Callable[[dict[str, Any], RequestContext], Awaitable[RootResult]]


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class QueryExecutor:
    """Entry point for the upstream query layer."""

    def __init__(
        self,
        store: EntityStore,
        *,
        coordinator: MutationCoordinator | None = None,
        resolver: RelationshipResolver | None = None,
        loader_config: LoaderConfig | None = None,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._resolver = resolver or RelationshipResolver()
        self._loader_config = loader_config or LoaderConfig()
        self._queries: dict[str, RootHandler] = {
            "character": self._single(EntityType.character),
            "characters": self._all(EntityType.character),
            "searchCharacters": self._search_characters,
            "planet": self._single(EntityType.planet),
            "planets": self._all(EntityType.planet),
            "starship": self._single(EntityType.starship),
            "starships": self._all(EntityType.starship),
            "film": self._single(EntityType.film),
            "films": self._all(EntityType.film),
            "filmsByEpisode": self._films_by_episode,
            "kills": self._kills,
        }
        self._mutations: dict[str, RootHandler] = {
            "addCharacter": self._add_character,
            "assignPilot": self._assign_pilot,
            "updatePlanetPopulation": self._update_planet_population,
            "recordKill": self._record_kill,
        }

    @property
    def operations(self) -> list[str]:
        return sorted([*self._queries, *self._mutations])

    async def execute(
        self,
        operation: str,
        arguments: Mapping[str, Any] | None = None,
        selection: Selection | None = None,
        *,
        context: RequestContext | None = None,
    ) -> ExecutionResult:
        """Run *operation* and resolve *selection* on its result."""
        handler = self._queries.get(operation) or self._mutations.get(operation)
        if handler is None:
            raise ValueError(f"Unknown operation: {operation!r}")
        context = context or RequestContext(self._store, config=self._loader_config)
        errors: list[FieldError] = []
        start = perf_counter()
        ok = False
        try:
            try:
                entity_type, value = await handler(dict(arguments or {}), context)
            except StoreUnavailable:
                raise
            except HolographError as exc:
                errors.append(_field_error([operation], exc))
                return ExecutionResult(data={operation: None}, errors=errors)
            data = await self._complete(
                entity_type, value, selection, [operation], context, errors
            )
            ok = not errors
        finally:
            record_latency(
                operation=f"execute.{operation}",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )
        logger.debug(
            "request %s %s batches=%s", context.request_id, operation, context.dispatch_counts()
        )
        return ExecutionResult(data={operation: data}, errors=errors)

    # ----- tree walk -----

    async def _complete(
        self,
        entity_type: EntityType,
        value: Any,
        selection: Selection | None,
        path: Path,
        context: RequestContext,
        errors: list[FieldError],
    ) -> Any:
        if value is None:
            return None
        if isinstance(value, list):
            return list(
                await asyncio.gather(
                    *(
                        self._complete(entity_type, item, selection, [*path, idx], context, errors)
                        for idx, item in enumerate(value)
                    )
                )
            )
        return await self._complete_object(entity_type, value, selection, path, context, errors)

    async def _complete_object(
        self,
        entity_type: EntityType,
        entity: EntityBase,
        selection: Selection | None,
        path: Path,
        context: RequestContext,
        errors: list[FieldError],
    ) -> dict[str, Any]:
        if not selection:
            return entity.model_dump(by_alias=True)
        aliases = TYPE_TO_MODEL[entity_type].field_aliases()
        names = list(selection)
        values = await asyncio.gather(
            *(
                self._resolve_field(
                    entity_type, entity, aliases, name, selection[name], [*path, name], context, errors
                )
                for name in names
            )
        )
        return dict(zip(names, values))

    async def _resolve_field(
        self,
        entity_type: EntityType,
        entity: EntityBase,
        aliases: dict[str, str],
        name: str,
        sub_selection: Selection | None,
        path: Path,
        context: RequestContext,
        errors: list[FieldError],
    ) -> Any:
        attribute = aliases.get(name)
        if attribute is not None:
            return getattr(entity, attribute)
        relationship = self._resolver.relationship(entity_type, name)
        if relationship is None:
            raise ValueError(f"{entity_type.value} has no field {name!r}")
        try:
            value = await self._resolver.resolve(entity_type, entity.id, name, context)
        except StoreUnavailable:
            raise
        except HolographError as exc:
            errors.append(_field_error(path, exc))
            return None
        if relationship.kind is RelationshipKind.aggregate:
            return value
        return await self._complete(
            relationship.target_type, value, sub_selection, path, context, errors
        )

    # ----- query roots -----

    def _prime(self, context: RequestContext, entity_type: EntityType, rows: list[Any]) -> None:
        loader = self._resolver.entities(context, entity_type)
        for row in rows:
            loader.prime(row.id, row)

    def _single(self, entity_type: EntityType) -> RootHandler:
        async def handler(args: dict[str, Any], context: RequestContext) -> RootResult:
            row = await context.store.get_by_id(entity_type, str(args["id"]))
            if row is not None:
                self._prime(context, entity_type, [row])
            return entity_type, row

        return handler

    def _all(self, entity_type: EntityType) -> RootHandler:
        async def handler(args: dict[str, Any], context: RequestContext) -> RootResult:
            rows = await context.store.list(entity_type)
            self._prime(context, entity_type, rows)
            return entity_type, rows

        return handler

    async def _search_characters(
        self, args: dict[str, Any], context: RequestContext
    ) -> RootResult:
        needle = str(args["name"]).casefold()
        rows = await context.store.find_by_predicate(
            EntityType.character, lambda row: needle in row.name.casefold()
        )
        rows.sort(key=by_name)
        self._prime(context, EntityType.character, rows)
        return EntityType.character, rows

    async def _films_by_episode(
        self, args: dict[str, Any], context: RequestContext
    ) -> RootResult:
        rows = sorted(await context.store.list(EntityType.film), key=by_episode)
        self._prime(context, EntityType.film, rows)
        return EntityType.film, rows

    async def _kills(self, args: dict[str, Any], context: RequestContext) -> RootResult:
        method = args.get("method")
        location = args.get("location")

        def matches(row: Any) -> bool:
            if method is not None and row.method != method:
                return False
            return location is None or row.location == location

        rows = await context.store.find_by_predicate(EntityType.kill_event, matches)
        rows.sort(key=by_occurrence)
        self._prime(context, EntityType.kill_event, rows)
        return EntityType.kill_event, rows

    # ----- mutation roots -----

    def _require_coordinator(self) -> MutationCoordinator:
        if self._coordinator is None:
            raise ValueError("Mutations need a MutationCoordinator; none configured")
        return self._coordinator

    async def _add_character(self, args: dict[str, Any], context: RequestContext) -> RootResult:
        row = await self._require_coordinator().add_character(args["input"])
        return EntityType.character, row

    async def _assign_pilot(self, args: dict[str, Any], context: RequestContext) -> RootResult:
        row = await self._require_coordinator().assign_pilot(
            str(args["starshipId"]), str(args["characterId"])
        )
        return EntityType.starship, row

    async def _update_planet_population(
        self, args: dict[str, Any], context: RequestContext
    ) -> RootResult:
        row = await self._require_coordinator().update_planet_population(
            str(args["planetId"]), args["population"]
        )
        return EntityType.planet, row

    async def _record_kill(self, args: dict[str, Any], context: RequestContext) -> RootResult:
        row = await self._require_coordinator().record_kill(args["input"])
        return EntityType.kill_event, row
