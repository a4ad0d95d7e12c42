"""Many-to-many edge kinds.

Each edge type is one table of ``(left_id, right_id)`` pairs.  The left
side is always the Character; either side can be looked up through the
store's direction indexes, so no entity carries its own copy of the set.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from holograph.models.entities import EntityType


class EdgeType(str, Enum):
    """Kind of many-to-many edge."""

    pilots = "PILOTS"
    appears_in = "APPEARS_IN"


class EdgeSide(str, Enum):
    """Which end of an edge the lookup keys belong to."""

    left = "left"
    right = "right"

    @property
    def opposite(self) -> EdgeSide:
        return EdgeSide.right if self is EdgeSide.left else EdgeSide.left


@dataclass(frozen=True)
class EdgeSpec:
    """Entity types joined by one edge type."""

    edge_type: EdgeType
    left: EntityType
    right: EntityType

    def side_type(self, side: EdgeSide) -> EntityType:
        return self.left if side is EdgeSide.left else self.right


EDGE_SPECS: dict[EdgeType, EdgeSpec] = {
    EdgeType.pilots: EdgeSpec(EdgeType.pilots, EntityType.character, EntityType.starship),
    EdgeType.appears_in: EdgeSpec(
        EdgeType.appears_in, EntityType.character, EntityType.film
    ),
}
