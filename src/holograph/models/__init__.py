"""Models domain — entity rows, edge kinds and mutation inputs."""

from __future__ import annotations

from holograph.models.edges import EDGE_SPECS
from holograph.models.edges import EdgeSide
from holograph.models.edges import EdgeSpec
from holograph.models.edges import EdgeType
from holograph.models.entities import Character
from holograph.models.entities import Entity
from holograph.models.entities import EntityBase
from holograph.models.entities import EntityType
from holograph.models.entities import Film
from holograph.models.entities import id_sort_key
from holograph.models.entities import IMMUTABLE_TYPES
from holograph.models.entities import KillEvent
from holograph.models.entities import Planet
from holograph.models.entities import Starship
from holograph.models.entities import TYPE_TO_MODEL
from holograph.models.inputs import AddCharacterInput
from holograph.models.inputs import RecordKillInput

__all__ = [
    # Entities
    "Character",
    "Entity",
    "EntityBase",
    "EntityType",
    "Film",
    "IMMUTABLE_TYPES",
    "KillEvent",
    "Planet",
    "Starship",
    "TYPE_TO_MODEL",
    "id_sort_key",
    # Edges
    "EDGE_SPECS",
    "EdgeSide",
    "EdgeSpec",
    "EdgeType",
    # Inputs
    "AddCharacterInput",
    "RecordKillInput",
]
