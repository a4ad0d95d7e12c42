"""Pydantic models for the five entity kinds held by the store.

Python attributes are snake_case; callers address fields by their
camelCase alias (``homeworldId``, ``episodeId``), which is also what
``model_dump(by_alias=True)`` produces.  Entity instances are frozen: the
store replaces a row with ``model_copy(update=...)`` instead of mutating it.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EntityType(str, Enum):
    """Kind of entity row."""

    character = "Character"
    planet = "Planet"
    starship = "Starship"
    film = "Film"
    kill_event = "KillEvent"


# ---------------------------------------------------------------------------
# Base model
# ---------------------------------------------------------------------------


class EntityBase(BaseModel):
    """Fields shared by every entity row."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    entity_type: ClassVar[EntityType]

    id: str = Field(description="Store-assigned identifier, unique per entity type.")

    @classmethod
    def field_aliases(cls) -> dict[str, str]:
        """Map each caller-facing field name to its Python attribute."""
        return {
            (info.alias or name): name for name, info in cls.model_fields.items()
        }


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class Character(EntityBase):
    """A character; ``homeworld_id`` is the Character→Planet foreign key."""

    entity_type: ClassVar[EntityType] = EntityType.character

    name: str = Field(description="Display name, unique across characters.")
    height: int | None = Field(default=None, description="Height in centimeters.")
    mass: int | None = Field(default=None, description="Mass in kilograms.")
    homeworld_id: str | None = Field(
        default=None,
        description="Planet this character was born on or inhabits.",
    )


class Planet(EntityBase):
    """A planet."""

    entity_type: ClassVar[EntityType] = EntityType.planet

    name: str
    population: float | None = Field(
        default=None,
        description="Sentient population; never negative.",
    )
    climate: str | None = Field(
        default=None,
        description="Comma-separated when diverse, e.g. 'murky, humid'.",
    )
    terrain: str | None = None


class Starship(EntityBase):
    """A starship or vehicle."""

    entity_type: ClassVar[EntityType] = EntityType.starship

    name: str
    model: str | None = None
    manufacturer: str | None = None
    length: float | None = Field(default=None, description="Length in meters.")
    crew: int | None = None
    passengers: int | None = None


class Film(EntityBase):
    """A film."""

    entity_type: ClassVar[EntityType] = EntityType.film

    title: str
    episode_id: int
    release_date: str | None = Field(
        default=None,
        description="ISO 8601 release date.",
    )
    director: str | None = None


class KillEvent(EntityBase):
    """A directed killer→victim event.  Append-only and immutable."""

    entity_type: ClassVar[EntityType] = EntityType.kill_event

    killer_id: str
    victim_id: str
    method: str | None = Field(
        default=None,
        description="Weapon or technique, e.g. 'Lightsaber'.",
    )
    location: str | None = None
    description: str | None = None
    occurred_at: str | None = Field(
        default=None,
        description="ISO 8601 timestamp or descriptive string.",
    )


Entity = Character | Planet | Starship | Film | KillEvent

TYPE_TO_MODEL: dict[EntityType, type[EntityBase]] = {
    EntityType.character: Character,
    EntityType.planet: Planet,
    EntityType.starship: Starship,
    EntityType.film: Film,
    EntityType.kill_event: KillEvent,
}

IMMUTABLE_TYPES = frozenset({EntityType.kill_event})


def id_sort_key(entity_id: str) -> tuple[int, int, str]:
    """Numeric-aware ordering key: ``"2"`` sorts before ``"10"``."""
    if entity_id.isdigit():
        return (0, int(entity_id), entity_id)
    return (1, 0, entity_id)
