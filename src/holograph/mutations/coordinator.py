"""Mutation coordinator — multi-step writes as all-or-nothing units.

Each mutation walks ``PENDING → VALIDATING → APPLYING → COMMITTED``.
Validation failures end in ``REJECTED`` before anything is written; an
exception while applying ends in ``FAILED → ROLLED_BACK``.  Validation and
apply share one store transaction, so the checks see exactly the state the
writes land on, and the store lock keeps concurrent mutations from
interleaving.  After a rollback, and before the lock is released, the
committed state is re-checked against every invariant.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from time import perf_counter
from typing import Any
from typing import TypeVar

from holograph.audit import AuditEvent
from holograph.audit import AuditEventType
from holograph.audit import AuditLogger
from holograph.config import MutationConfig
from holograph.errors import NotFound
from holograph.errors import RollbackVerificationError
from holograph.errors import StoreUnavailable
from holograph.errors import ValidationFailed
from holograph.models.edges import EdgeType
from holograph.models.entities import Character
from holograph.models.entities import EntityType
from holograph.models.entities import KillEvent
from holograph.models.entities import Planet
from holograph.models.entities import Starship
from holograph.models.inputs import AddCharacterInput
from holograph.models.inputs import RecordKillInput
from holograph.mutations.invariants import check_no_prior_death
from holograph.mutations.invariants import check_non_empty_name
from holograph.mutations.invariants import check_non_negative_population
from holograph.mutations.invariants import check_not_self_kill
from holograph.mutations.invariants import check_references_exist
from holograph.mutations.invariants import check_store_consistency
from holograph.mutations.invariants import check_unique_name
from holograph.mutations.invariants import Violation
from holograph.mutations.invariants import ViolationCode
from holograph.observability import record_latency
from holograph.store.base import EntityStore
from holograph.store.base import StoreSnapshot
from holograph.store.base import StoreTransaction

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class MutationState(str, Enum):
    """Lifecycle state of one mutation run."""

    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    APPLYING = "APPLYING"
    COMMITTED = "COMMITTED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"
    ROLLED_BACK = "ROLLED_BACK"


_TRANSITIONS: dict[MutationState, frozenset[MutationState]] = {
    MutationState.PENDING: frozenset({MutationState.VALIDATING}),
    MutationState.VALIDATING: frozenset({MutationState.APPLYING, MutationState.REJECTED}),
    MutationState.APPLYING: frozenset({MutationState.COMMITTED, MutationState.FAILED}),
    MutationState.FAILED: frozenset({MutationState.ROLLED_BACK}),
}


@dataclass
class MutationRecord:
    """Trace of one mutation run."""

    mutation_id: str
    name: str
    state: MutationState = MutationState.PENDING
    history: list[MutationState] = field(default_factory=lambda: [MutationState.PENDING])
    error_code: str | None = None

    def advance(self, state: MutationState) -> None:
        if state not in _TRANSITIONS.get(self.state, frozenset()):
            raise RuntimeError(f"illegal mutation transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)


Validator = Callable[[StoreTransaction], Awaitable[list[Violation]]]
Applier = Callable[[StoreTransaction], Awaitable[T]]


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------


class MutationCoordinator:
    """Validates, applies and commits (or rolls back) store mutations."""

    def __init__(
        self,
        store: EntityStore,
        *,
        config: MutationConfig | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self._store = store
        self._config = config or MutationConfig()
        self._audit = audit_logger
        self.history: deque[MutationRecord] = deque(maxlen=self._config.history_size)

    # ----- operations -----

    async def add_character(
        self, data: AddCharacterInput | Mapping[str, Any]
    ) -> Character:
        """Insert a character plus its starship and film edges."""
        request = (
            data if isinstance(data, AddCharacterInput) else AddCharacterInput.model_validate(data)
        )
        starship_ids = list(dict.fromkeys(request.starship_ids))
        film_ids = list(dict.fromkeys(request.film_ids))

        async def validate(tx: StoreTransaction) -> list[Violation]:
            homeworld_ids = [request.homeworld_id] if request.homeworld_id is not None else []
            namesakes = await tx.find_by_predicate(
                EntityType.character, lambda row: row.name == request.name
            )
            checks = [
                check_non_empty_name(request.name),
                check_unique_name(request.name, namesakes),
                check_references_exist(
                    "homeworldId",
                    EntityType.planet,
                    homeworld_ids,
                    await tx.get_many(EntityType.planet, homeworld_ids),
                ),
                check_references_exist(
                    "starshipIds",
                    EntityType.starship,
                    starship_ids,
                    await tx.get_many(EntityType.starship, starship_ids),
                ),
                check_references_exist(
                    "filmIds",
                    EntityType.film,
                    film_ids,
                    await tx.get_many(EntityType.film, film_ids),
                ),
            ]
            return [v for v in checks if v is not None]

        async def apply(tx: StoreTransaction) -> Character:
            character_id = await tx.insert(
                EntityType.character,
                {
                    "name": request.name,
                    "height": request.height,
                    "mass": request.mass,
                    "homeworld_id": request.homeworld_id,
                },
            )
            for starship_id in starship_ids:
                await tx.add_edge(EdgeType.pilots, character_id, starship_id)
            for film_id in film_ids:
                await tx.add_edge(EdgeType.appears_in, character_id, film_id)
            return await tx.get_by_id(EntityType.character, character_id)

        return await self._run(
            "add_character",
            request.model_dump(by_alias=True),
            validate,
            apply,
        )

    async def assign_pilot(self, starship_id: str, character_id: str) -> Starship:
        """Link a character and a starship; assigning twice is a no-op."""

        async def validate(tx: StoreTransaction) -> list[Violation]:
            if await tx.get_by_id(EntityType.starship, starship_id) is None:
                raise NotFound(EntityType.starship.value, starship_id)
            if await tx.get_by_id(EntityType.character, character_id) is None:
                raise NotFound(EntityType.character.value, character_id)
            return []

        async def apply(tx: StoreTransaction) -> Starship:
            created = await tx.add_edge(EdgeType.pilots, character_id, starship_id)
            if not created:
                logger.info(
                    "character %s already pilots starship %s", character_id, starship_id
                )
            return await tx.get_by_id(EntityType.starship, starship_id)

        return await self._run(
            "assign_pilot",
            {"starshipId": starship_id, "characterId": character_id},
            validate,
            apply,
        )

    async def update_planet_population(self, planet_id: str, population: float) -> Planet:
        """Set a planet's population."""

        async def validate(tx: StoreTransaction) -> list[Violation]:
            if await tx.get_by_id(EntityType.planet, planet_id) is None:
                raise NotFound(EntityType.planet.value, planet_id)
            violation = check_non_negative_population(population)
            return [violation] if violation else []

        async def apply(tx: StoreTransaction) -> Planet:
            updated = await tx.update_scalar(
                EntityType.planet, planet_id, "population", population
            )
            if updated is None:
                raise NotFound(EntityType.planet.value, planet_id)
            return updated

        return await self._run(
            "update_planet_population",
            {"planetId": planet_id, "population": population},
            validate,
            apply,
        )

    async def record_kill(self, data: RecordKillInput | Mapping[str, Any]) -> KillEvent:
        """Append a KillEvent."""
        request = (
            data if isinstance(data, RecordKillInput) else RecordKillInput.model_validate(data)
        )

        async def validate(tx: StoreTransaction) -> list[Violation]:
            # self-kill is rejected whether or not the id exists
            violation = check_not_self_kill(request.killer_id, request.victim_id)
            if violation:
                return [violation]
            for character_id in (request.killer_id, request.victim_id):
                if await tx.get_by_id(EntityType.character, character_id) is None:
                    raise NotFound(EntityType.character.value, character_id)
            prior = await tx.find_by_predicate(
                EntityType.kill_event, lambda row: row.victim_id == request.victim_id
            )
            violation = check_no_prior_death(request.victim_id, prior[0] if prior else None)
            return [violation] if violation else []

        async def apply(tx: StoreTransaction) -> KillEvent:
            kill_id = await tx.insert(
                EntityType.kill_event, request.model_dump(exclude_none=True)
            )
            return await tx.get_by_id(EntityType.kill_event, kill_id)

        return await self._run(
            "record_kill",
            request.model_dump(by_alias=True),
            validate,
            apply,
        )

    # ----- engine -----

    async def _run(
        self,
        name: str,
        arguments: dict[str, Any],
        validate: Validator,
        apply: Applier[T],
    ) -> T:
        record = MutationRecord(mutation_id=f"mut_{uuid.uuid4().hex}", name=name)
        self.history.append(record)
        start = perf_counter()
        ok = False
        try:
            async with self._store.transaction() as tx:
                before: StoreSnapshot | None = None
                if self._config.verify_after_rollback:
                    before = await self._store.snapshot()
                record.advance(MutationState.VALIDATING)
                violations = await validate(tx)
                if violations:
                    raise ValidationFailed(violations)
                record.advance(MutationState.APPLYING)
                try:
                    result = await apply(tx)
                except Exception as exc:
                    # roll back and re-check while the write lock is still held
                    tx.rollback()
                    self._mark_rolled_back(record)
                    if before is not None and not isinstance(exc, StoreUnavailable):
                        await self._verify_rollback(record, before, exc)
                    raise
            # no await since the commit, so this is the version it produced
            store_version = self._store.version
            ok = True
        except Exception as exc:
            record.error_code = getattr(exc, "code", type(exc).__name__)
            await self._on_failure(record, arguments, exc)
            raise
        finally:
            record_latency(
                operation=f"mutation.{name}",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

        record.advance(MutationState.COMMITTED)
        logger.info(
            "mutation %s %s committed version=%d", name, record.mutation_id, store_version
        )
        await self._log(
            AuditEventType.MUTATION_COMMITTED,
            record,
            {"arguments": arguments, "result_id": getattr(result, "id", None)},
            store_version=store_version,
        )
        return result

    @staticmethod
    def _mark_rolled_back(record: MutationRecord) -> None:
        record.advance(MutationState.FAILED)
        logger.exception("mutation %s %s failed while applying", record.name, record.mutation_id)
        record.advance(MutationState.ROLLED_BACK)

    async def _on_failure(
        self,
        record: MutationRecord,
        arguments: dict[str, Any],
        exc: Exception,
    ) -> None:
        payload = {"arguments": arguments, "error_code": record.error_code}
        if record.state is MutationState.VALIDATING:
            record.advance(MutationState.REJECTED)
            logger.warning(
                "mutation %s %s rejected: %s", record.name, record.mutation_id, exc
            )
            await self._log(AuditEventType.MUTATION_REJECTED, record, payload)
            return
        if record.state is MutationState.PENDING:
            # never entered the unit of work (lock conflict, closed store)
            logger.warning(
                "mutation %s %s not started: %s", record.name, record.mutation_id, exc
            )
            return
        if record.state is MutationState.APPLYING:
            # apply succeeded but the commit itself failed
            self._mark_rolled_back(record)
        await self._log(AuditEventType.MUTATION_ROLLED_BACK, record, payload)

    async def _verify_rollback(
        self,
        record: MutationRecord,
        before: StoreSnapshot,
        exc: Exception,
    ) -> None:
        after = await self._store.snapshot()
        violations = check_store_consistency(after)
        if not after.same_state(before):
            logger.error("mutation %s left partial writes after rollback", record.mutation_id)
            violations.append(
                Violation(
                    code=ViolationCode.ROLLBACK_DRIFT,
                    invariant="rollback.restores_snapshot",
                    message="committed state differs from the pre-mutation snapshot",
                )
            )
        if violations:
            raise RollbackVerificationError(violations) from exc

    async def _log(
        self,
        event_type: AuditEventType,
        record: MutationRecord,
        payload: dict[str, Any],
        *,
        store_version: int | None = None,
    ) -> None:
        if self._audit is None:
            return
        event = AuditEvent(
            event_type=event_type,
            mutation_id=record.mutation_id,
            mutation=record.name,
            store_version=store_version,
            payload=payload,
        )
        try:
            await self._audit.log(event)
        except OSError:
            logger.exception("audit write failed for mutation %s", record.mutation_id)
