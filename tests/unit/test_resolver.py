"""Unit tests for relationship resolution."""

import asyncio

import pytest

from holograph.errors import NotFound
from holograph.graph.context import RequestContext
from holograph.graph.resolver import RELATIONSHIPS
from holograph.graph.resolver import RelationshipKind
from holograph.models import EntityType


def _ids(rows):
    return [row.id for row in rows]


def _names(rows):
    return [row.name for row in rows]


# ---------------------------------------------------------------------------
# Relationship table
# ---------------------------------------------------------------------------


class TestRelationshipTable:
    def test_every_relationship_has_a_handler(self, resolver):
        assert set(resolver._handlers) == set(RELATIONSHIPS)
        for (parent_type, name), relationship in RELATIONSHIPS.items():
            assert resolver.relationship(parent_type, name) is relationship

    def test_kill_count_is_aggregate(self, resolver):
        relationship = resolver.relationship(EntityType.character, "killCount")
        assert relationship.kind is RelationshipKind.aggregate
        assert relationship.target_type is None

    async def test_unknown_relationship(self, resolver, context):
        with pytest.raises(ValueError):
            await resolver.resolve(EntityType.planet, "1", "moons", context)


# ---------------------------------------------------------------------------
# Character relationships
# ---------------------------------------------------------------------------


class TestCharacterRelationships:
    async def test_homeworld(self, resolver, context):
        planet = await resolver.resolve(EntityType.character, "3", "homeworld", context)
        assert planet.name == "Alderaan"

    async def test_homeworld_absent_is_none(self, resolver, context):
        assert await resolver.resolve(EntityType.character, "5", "homeworld", context) is None

    async def test_starships_include_edges_seeded_from_either_side(self, resolver, context):
        starships = await resolver.resolve(EntityType.character, "1", "starships", context)
        assert _ids(starships) == ["1", "2", "4"]

    async def test_films_ordered_by_episode(self, resolver, context):
        films = await resolver.resolve(EntityType.character, "2", "films", context)
        assert _ids(films) == ["4", "1", "2", "3"]

    async def test_kills_and_kill_count(self, resolver, context):
        kills = await resolver.resolve(EntityType.character, "2", "kills", context)
        assert _ids(kills) == ["1"]
        assert await resolver.resolve(EntityType.character, "2", "killCount", context) == 1
        assert await resolver.resolve(EntityType.character, "1", "killCount", context) == 0

    async def test_death(self, resolver, context):
        death = await resolver.resolve(EntityType.character, "6", "death", context)
        assert death.id == "1"
        assert await resolver.resolve(EntityType.character, "1", "death", context) is None

    async def test_missing_parent_raises_not_found(self, resolver, context):
        with pytest.raises(NotFound):
            await resolver.resolve(EntityType.character, "999", "starships", context)
        with pytest.raises(NotFound):
            await resolver.resolve(EntityType.character, "999", "homeworld", context)
        with pytest.raises(NotFound):
            await resolver.resolve(EntityType.character, "999", "killCount", context)


# ---------------------------------------------------------------------------
# Reverse relationships
# ---------------------------------------------------------------------------


class TestReverseRelationships:
    async def test_planet_residents_ordered_by_name(self, resolver, context):
        residents = await resolver.resolve(EntityType.planet, "1", "residents", context)
        assert _names(residents) == ["Darth Vader", "Luke Skywalker"]

    async def test_planet_without_residents(self, resolver, context):
        assert await resolver.resolve(EntityType.planet, "4", "residents", context) == []

    async def test_starship_pilots(self, resolver, context):
        pilots = await resolver.resolve(EntityType.starship, "4", "pilots", context)
        assert _names(pilots) == ["Han Solo", "Luke Skywalker"]

    async def test_film_characters(self, resolver, context):
        characters = await resolver.resolve(EntityType.film, "4", "characters", context)
        assert _names(characters) == ["Darth Vader", "Yoda"]

    async def test_kill_parties(self, resolver, context):
        killer = await resolver.resolve(EntityType.kill_event, "1", "killer", context)
        victim = await resolver.resolve(EntityType.kill_event, "1", "victim", context)
        assert killer.name == "Darth Vader"
        assert victim.name == "Obi-Wan Kenobi"

    async def test_missing_starship_raises_not_found(self, resolver, context):
        with pytest.raises(NotFound) as exc_info:
            await resolver.resolve(EntityType.starship, "77", "pilots", context)
        assert exc_info.value.details["entity_type"] == "Starship"


# ---------------------------------------------------------------------------
# Symmetry and batching
# ---------------------------------------------------------------------------


class TestSymmetry:
    async def test_pilot_edges_agree_in_both_directions(self, store, resolver):
        context = RequestContext(store)
        for character in await store.list(EntityType.character):
            starships = await resolver.resolve(
                EntityType.character, character.id, "starships", context
            )
            for starship in starships:
                pilots = await resolver.resolve(EntityType.starship, starship.id, "pilots", context)
                assert character.id in _ids(pilots)

    async def test_film_edges_agree_in_both_directions(self, store, resolver):
        context = RequestContext(store)
        for film in await store.list(EntityType.film):
            characters = await resolver.resolve(EntityType.film, film.id, "characters", context)
            for character in characters:
                films = await resolver.resolve(EntityType.character, character.id, "films", context)
                assert film.id in _ids(films)


class TestBatching:
    async def test_siblings_share_one_fetch(self, store, resolver, context):
        characters = await store.list(EntityType.character)
        results = await asyncio.gather(
            *(
                resolver.resolve(EntityType.character, c.id, "starships", context)
                for c in characters
            )
        )
        assert len(results) == 6
        assert context.dispatch_counts()["character.starships"] == 1

    async def test_kills_and_kill_count_share_a_loader(self, resolver, context):
        await asyncio.gather(
            resolver.resolve(EntityType.character, "2", "kills", context),
            resolver.resolve(EntityType.character, "2", "killCount", context),
            resolver.resolve(EntityType.character, "1", "killCount", context),
        )
        assert context.dispatch_counts()["character.kills"] == 1

    async def test_residents_for_every_planet_in_one_fetch(self, store, resolver, context):
        planets = await store.list(EntityType.planet)
        results = await asyncio.gather(
            *(resolver.resolve(EntityType.planet, p.id, "residents", context) for p in planets)
        )
        assert context.dispatch_counts()["planet.residents"] == 1
        characters = await store.list(EntityType.character)
        for planet, residents in zip(planets, results):
            expected = {c.id for c in characters if c.homeworld_id == planet.id}
            assert {r.id for r in residents} == expected
        assert results[3] == []

    async def test_ordering_is_stable_across_requests(self, store, resolver):
        first = await resolver.resolve(
            EntityType.film, "1", "characters", RequestContext(store)
        )
        second = await resolver.resolve(
            EntityType.film, "1", "characters", RequestContext(store)
        )
        assert _ids(first) == _ids(second)
        assert _names(first) == sorted(_names(first))

    async def test_missing_parent_does_not_fail_siblings(self, resolver, context):
        results = await asyncio.gather(
            resolver.resolve(EntityType.planet, "1", "residents", context),
            resolver.resolve(EntityType.planet, "404", "residents", context),
            return_exceptions=True,
        )
        assert _names(results[0]) == ["Darth Vader", "Luke Skywalker"]
        assert isinstance(results[1], NotFound)
        assert context.dispatch_counts()["planet.residents"] == 1
