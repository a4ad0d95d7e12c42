"""Pydantic models for mutation inputs.

Arguments arrive type-checked from the upstream query layer; these models
only shape them.  Invariant checks (non-empty name, existing references,
self-kill) belong to the invariant checker, not to field validators, so
that every rejection carries a violation code.
"""

from __future__ import annotations

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic.alias_generators import to_camel


class _InputBase(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddCharacterInput(_InputBase):
    """Input for ``addCharacter``."""

    name: str = Field(description="Name of the new character (unique).")
    height: int | None = None
    mass: int | None = None
    homeworld_id: str | None = Field(
        default=None,
        description="Existing planet id, if any.",
    )
    starship_ids: list[str] = Field(
        default_factory=list,
        description="Existing starships this character has piloted.",
    )
    film_ids: list[str] = Field(
        default_factory=list,
        description="Existing films this character appears in.",
    )


class RecordKillInput(_InputBase):
    """Input for ``recordKill``."""

    killer_id: str
    victim_id: str
    method: str | None = None
    location: str | None = None
    description: str | None = None
    occurred_at: str | None = None
