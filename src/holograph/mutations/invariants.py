"""Consistency invariant checker.

Stateless predicates run while a mutation is VALIDATING.  Each returns
``None`` when its invariant holds, or a ``Violation`` naming the invariant
and a specific ``ViolationCode``.  ``check_store_consistency`` audits a
whole committed snapshot and is used to verify rollbacks and seed data.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Collection
from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any

from holograph.models.edges import EDGE_SPECS
from holograph.models.entities import Character
from holograph.models.entities import EntityType
from holograph.models.entities import IMMUTABLE_TYPES
from holograph.models.entities import KillEvent
from holograph.models.entities import TYPE_TO_MODEL
from holograph.store.base import StoreSnapshot


class ViolationCode(str, Enum):
    """Machine-readable reason a mutation was rejected."""

    EMPTY_NAME = "EMPTY_NAME"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    DANGLING_REFERENCE = "DANGLING_REFERENCE"
    SELF_KILL = "SELF_KILL"
    DUPLICATE_DEATH = "DUPLICATE_DEATH"
    NEGATIVE_POPULATION = "NEGATIVE_POPULATION"
    ASYMMETRIC_EDGE = "ASYMMETRIC_EDGE"
    IMMUTABLE_ENTITY = "IMMUTABLE_ENTITY"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"
    ROLLBACK_DRIFT = "ROLLBACK_DRIFT"


@dataclass(frozen=True)
class Violation:
    """One broken invariant."""

    code: ViolationCode
    invariant: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "invariant": self.invariant,
            "message": self.message,
            "details": dict(self.details),
        }


# ---------------------------------------------------------------------------
# Mutation predicates
# ---------------------------------------------------------------------------


def check_non_empty_name(name: str) -> Violation | None:
    if name.strip():
        return None
    return Violation(
        ViolationCode.EMPTY_NAME,
        "character.name.non_empty",
        "character name must not be empty",
    )


def check_unique_name(name: str, characters: Iterable[Character]) -> Violation | None:
    for character in characters:
        if character.name == name:
            return Violation(
                ViolationCode.DUPLICATE_NAME,
                "character.name.unique",
                f"a character named {name!r} already exists",
                {"name": name, "existing_id": character.id},
            )
    return None


def check_references_exist(
    field_name: str,
    entity_type: EntityType,
    requested_ids: Iterable[str | None],
    existing_ids: Collection[str],
) -> Violation | None:
    """Every non-null id in *requested_ids* must be in *existing_ids*."""
    missing = sorted(
        {rid for rid in requested_ids if rid is not None and rid not in existing_ids}
    )
    if not missing:
        return None
    return Violation(
        ViolationCode.DANGLING_REFERENCE,
        "reference.exists",
        f"{field_name} references unknown {entity_type.value} id(s): {', '.join(missing)}",
        {"field": field_name, "entity_type": entity_type.value, "missing_ids": missing},
    )


def check_not_self_kill(killer_id: str, victim_id: str) -> Violation | None:
    if killer_id != victim_id:
        return None
    return Violation(
        ViolationCode.SELF_KILL,
        "kill.no_self_kill",
        f"character {killer_id!r} cannot be recorded as its own killer",
        {"character_id": killer_id},
    )


def check_no_prior_death(victim_id: str, prior: KillEvent | None) -> Violation | None:
    if prior is None:
        return None
    return Violation(
        ViolationCode.DUPLICATE_DEATH,
        "kill.single_death",
        f"character {victim_id!r} already has a recorded death",
        {"victim_id": victim_id, "kill_event_id": prior.id},
    )


def check_non_negative_population(population: float) -> Violation | None:
    if population >= 0:
        return None
    return Violation(
        ViolationCode.NEGATIVE_POPULATION,
        "planet.population.non_negative",
        f"population must be >= 0, got {population}",
        {"population": population},
    )


def check_mutable(entity_type: EntityType) -> Violation | None:
    if entity_type not in IMMUTABLE_TYPES:
        return None
    return Violation(
        ViolationCode.IMMUTABLE_ENTITY,
        "entity.immutable",
        f"{entity_type.value} rows cannot be updated",
        {"entity_type": entity_type.value},
    )


def check_known_field(entity_type: EntityType, field_name: str) -> Violation | None:
    model_cls = TYPE_TO_MODEL[entity_type]
    if field_name in model_cls.model_fields and field_name != "id":
        return None
    return Violation(
        ViolationCode.UNKNOWN_FIELD,
        "entity.known_field",
        f"{entity_type.value} has no updatable field {field_name!r}",
        {"entity_type": entity_type.value, "field": field_name},
    )


# ---------------------------------------------------------------------------
# Whole-store audit
# ---------------------------------------------------------------------------


def check_store_consistency(snapshot: StoreSnapshot) -> list[Violation]:
    """Return every invariant violation present in *snapshot*."""
    violations: list[Violation] = []
    characters = snapshot.rows.get(EntityType.character, {})
    planets = snapshot.rows.get(EntityType.planet, {})
    kills = snapshot.rows.get(EntityType.kill_event, {})

    for character in characters.values():
        violation = check_references_exist(
            f"Character {character.id}.homeworldId",
            EntityType.planet,
            [character.homeworld_id],
            planets,
        )
        if violation:
            violations.append(violation)

    counts = Counter(character.name for character in characters.values())
    for name, count in sorted(counts.items()):
        if count > 1:
            violations.append(
                Violation(
                    ViolationCode.DUPLICATE_NAME,
                    "character.name.unique",
                    f"{count} characters are named {name!r}",
                    {"name": name},
                )
            )

    deaths: dict[str, KillEvent] = {}
    for kill in sorted(kills.values(), key=lambda k: k.id):
        violation = check_references_exist(
            f"KillEvent {kill.id}",
            EntityType.character,
            [kill.killer_id, kill.victim_id],
            characters,
        )
        if violation:
            violations.append(violation)
        violation = check_not_self_kill(kill.killer_id, kill.victim_id)
        if violation:
            violations.append(violation)
        violation = check_no_prior_death(kill.victim_id, deaths.get(kill.victim_id))
        if violation:
            violations.append(violation)
        deaths.setdefault(kill.victim_id, kill)

    for edge_type, pairs in snapshot.edges.items():
        spec = EDGE_SPECS[edge_type]
        left_rows = snapshot.rows.get(spec.left, {})
        right_rows = snapshot.rows.get(spec.right, {})
        for violation in (
            check_references_exist(
                f"{edge_type.value} left side",
                spec.left,
                (a for a, _ in pairs),
                left_rows,
            ),
            check_references_exist(
                f"{edge_type.value} right side",
                spec.right,
                (b for _, b in pairs),
                right_rows,
            ),
        ):
            if violation:
                violations.append(violation)

        forward = {
            (a, b)
            for a, bs in snapshot.forward.get(edge_type, {}).items()
            for b in bs
        }
        reverse = {
            (a, b)
            for b, as_ in snapshot.reverse.get(edge_type, {}).items()
            for a in as_
        }
        if forward != pairs or reverse != pairs:
            drift = sorted((forward ^ pairs) | (reverse ^ pairs))
            violations.append(
                Violation(
                    ViolationCode.ASYMMETRIC_EDGE,
                    "edge.symmetric",
                    f"{edge_type.value} indexes disagree with the edge table",
                    {"edge_type": edge_type.value, "pairs": [list(p) for p in drift]},
                )
            )

    return violations
