"""Root conftest — suite markers and a seeded in-memory store per test."""

from __future__ import annotations

import copy
from pathlib import Path

import pytest

from holograph.config import MutationConfig
from holograph.graph.context import RequestContext
from holograph.graph.executor import QueryExecutor
from holograph.graph.resolver import RelationshipResolver
from holograph.mutations.coordinator import MutationCoordinator
from holograph.store.memory import InMemoryEntityStore


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    """Attach suite markers from test path.

    - `tests/unit/*` -> `unit`
    - `tests/integration/*` -> `integration`
    """
    root = Path(__file__).resolve().parents[1]
    for item in items:
        item_path = Path(str(item.fspath)).resolve()
        try:
            rel = item_path.relative_to(root)
        except ValueError:
            continue

        parts = rel.parts
        if len(parts) < 2 or parts[0] != "tests":
            continue
        if parts[1] == "unit":
            item.add_marker(pytest.mark.unit)
        elif parts[1] == "integration":
            item.add_marker(pytest.mark.integration)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

SEED: dict[str, list[dict]] = {
    "planets": [
        {"id": "1", "name": "Tatooine", "population": 200000, "climate": "arid", "terrain": "desert"},
        {"id": "2", "name": "Alderaan", "population": 2000000000, "climate": "temperate"},
        {"id": "3", "name": "Corellia", "population": 3000000000, "climate": "temperate"},
        {"id": "4", "name": "Hoth", "population": 0, "climate": "frozen"},
        {"id": "5", "name": "Dagobah", "population": 0, "climate": "murky"},
    ],
    "starships": [
        {"id": "1", "name": "X-wing", "model": "T-65 X-wing", "length": 12.5, "crew": 1},
        {"id": "2", "name": "Imperial shuttle", "length": 20, "crew": 6, "passengers": 20},
        {"id": "3", "name": "TIE Advanced x1", "length": 9.2, "crew": 1},
        {"id": "4", "name": "Millennium Falcon", "length": 34.37, "crew": 4, "pilots": ["1"]},
        {"id": "5", "name": "Slave 1", "length": 21.5, "crew": 1},
    ],
    "films": [
        {"id": "1", "title": "A New Hope", "episodeId": 4, "releaseDate": "1977-05-25"},
        {"id": "2", "title": "The Empire Strikes Back", "episodeId": 5},
        {"id": "3", "title": "Return of the Jedi", "episodeId": 6},
        {"id": "4", "title": "The Phantom Menace", "episodeId": 1},
    ],
    "characters": [
        {
            "id": "1",
            "name": "Luke Skywalker",
            "height": 172,
            "mass": 77,
            "homeworld": "1",
            "starships": ["1", "2"],
            "films": ["1", "2", "3"],
        },
        {
            "id": "2",
            "name": "Darth Vader",
            "height": 202,
            "mass": 136,
            "homeworld": "1",
            "starships": ["2", "3"],
            "films": ["1", "2", "3", "4"],
        },
        {"id": "3", "name": "Leia Organa", "homeworld": "2", "films": ["1", "2", "3"]},
        {"id": "4", "name": "Han Solo", "homeworld": "3", "starships": ["4"], "films": ["1", "2", "3"]},
        {"id": "5", "name": "Yoda", "homeworld": None, "films": ["2", "3", "4"]},
        {"id": "6", "name": "Obi-Wan Kenobi", "films": ["1"]},
    ],
    "kills": [
        {
            "id": "1",
            "killerId": "2",
            "victimId": "6",
            "method": "Lightsaber",
            "location": "Death Star",
            "occurredAt": "1977-05-25",
        },
    ],
}


def seeded_store(config: MutationConfig | None = None) -> InMemoryEntityStore:
    return InMemoryEntityStore.from_records(**copy.deepcopy(SEED), config=config)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store() -> InMemoryEntityStore:
    """Fresh store seeded with the sample dataset."""
    return seeded_store(MutationConfig(lock_timeout_seconds=0.5))


@pytest.fixture()
def store_factory():
    """Build extra seeded stores with a custom mutation config."""
    return seeded_store


@pytest.fixture()
def coordinator(store) -> MutationCoordinator:
    return MutationCoordinator(store)


@pytest.fixture()
def resolver() -> RelationshipResolver:
    return RelationshipResolver()


@pytest.fixture()
def context(store) -> RequestContext:
    return RequestContext(store)


@pytest.fixture()
def executor(store, coordinator) -> QueryExecutor:
    return QueryExecutor(store, coordinator=coordinator)
