"""Unit tests for the in-memory entity store."""

import asyncio

import pytest

from holograph.config import MutationConfig
from holograph.errors import ConflictRetryable
from holograph.errors import NotFound
from holograph.errors import StoreUnavailable
from holograph.errors import ValidationFailed
from holograph.models import EdgeSide
from holograph.models import EdgeType
from holograph.models import EntityType
from holograph.mutations.invariants import ViolationCode
from holograph.store import InMemoryEntityStore


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


class TestFromRecords:
    async def test_seed_counts(self, store):
        assert len(await store.list(EntityType.character)) == 6
        assert len(await store.list(EntityType.planet)) == 5
        assert len(await store.list(EntityType.kill_event)) == 1

    async def test_starship_pilots_and_character_starships_share_one_table(self, store):
        pilots = await store.neighbors(EdgeType.pilots, ["4"], EdgeSide.right)
        assert pilots["4"] == frozenset({"1", "4"})
        luke = await store.neighbors(EdgeType.pilots, ["1"], EdgeSide.left)
        assert luke["1"] == frozenset({"1", "2", "4"})

    def test_dangling_homeworld_rejected(self):
        with pytest.raises(ValidationFailed) as exc_info:
            InMemoryEntityStore.from_records(
                characters=[{"id": "1", "name": "Rey", "homeworld": "99"}],
            )
        assert exc_info.value.violation_code is ViolationCode.DANGLING_REFERENCE

    def test_dangling_edge_rejected(self):
        with pytest.raises(ValidationFailed) as exc_info:
            InMemoryEntityStore.from_records(
                characters=[{"id": "1", "name": "Rey", "starships": ["9"]}],
            )
        assert exc_info.value.violation_code is ViolationCode.DANGLING_REFERENCE

    def test_duplicate_death_rejected(self):
        with pytest.raises(ValidationFailed) as exc_info:
            InMemoryEntityStore.from_records(
                characters=[
                    {"id": "1", "name": "A"},
                    {"id": "2", "name": "B"},
                    {"id": "3", "name": "C"},
                ],
                kills=[
                    {"id": "1", "killerId": "1", "victimId": "3"},
                    {"id": "2", "killerId": "2", "victimId": "3"},
                ],
            )
        assert exc_info.value.violation_code is ViolationCode.DUPLICATE_DEATH

    def test_duplicate_id_rejected(self):
        with pytest.raises(ValueError, match="duplicate"):
            InMemoryEntityStore.from_records(
                planets=[{"id": "1", "name": "Hoth"}, {"id": "1", "name": "Endor"}],
            )

    async def test_derived_lists_in_records_are_ignored(self):
        store = InMemoryEntityStore.from_records(
            planets=[{"id": "1", "name": "Tatooine", "residents": ["7"]}],
            films=[{"id": "1", "title": "A New Hope", "episodeId": 4, "characters": ["7"]}],
        )
        assert await store.get_by_id(EntityType.planet, "1") is not None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReads:
    async def test_get_by_id_missing_returns_none(self, store):
        assert await store.get_by_id(EntityType.character, "999") is None

    async def test_get_many_skips_missing(self, store):
        rows = await store.get_many(EntityType.planet, ["1", "999", "2"])
        assert set(rows) == {"1", "2"}

    async def test_list_ordered_by_numeric_id(self, store):
        ids = [row.id for row in await store.list(EntityType.starship)]
        assert ids == ["1", "2", "3", "4", "5"]

    async def test_find_by_predicate(self, store):
        rows = await store.find_by_predicate(
            EntityType.character, lambda row: row.homeworld_id == "1"
        )
        assert [row.name for row in rows] == ["Luke Skywalker", "Darth Vader"]

    async def test_neighbors_for_unlinked_id_is_empty(self, store):
        result = await store.neighbors(EdgeType.pilots, ["5"], EdgeSide.right)
        assert result == {"5": frozenset()}


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransactions:
    async def test_commit_publishes_writes(self, store):
        version = store.version
        async with store.transaction() as tx:
            new_id = await tx.insert(EntityType.planet, {"name": "Endor"})
        assert new_id == "6"
        assert (await store.get_by_id(EntityType.planet, "6")).name == "Endor"
        assert store.version == version + 1

    async def test_writes_invisible_until_commit(self, store):
        async with store.transaction() as tx:
            await tx.add_edge(EdgeType.pilots, "3", "4")
            assert "3" in (await tx.neighbors(EdgeType.pilots, ["4"], EdgeSide.right))["4"]
            outside = await store.neighbors(EdgeType.pilots, ["4"], EdgeSide.right)
            assert "3" not in outside["4"]

    async def test_exception_discards_writes(self, store):
        before = await store.snapshot()
        with pytest.raises(RuntimeError):
            async with store.transaction() as tx:
                await tx.insert(EntityType.planet, {"name": "Endor"})
                await tx.add_edge(EdgeType.pilots, "3", "4")
                raise RuntimeError("boom")
        after = await store.snapshot()
        assert after.same_state(before)
        assert after.version == before.version

    async def test_read_only_transaction_keeps_version(self, store):
        version = store.version
        async with store.transaction() as tx:
            await tx.get_by_id(EntityType.planet, "1")
        assert store.version == version

    async def test_insert_rejects_explicit_id(self, store):
        with pytest.raises(ValueError):
            async with store.transaction() as tx:
                await tx.insert(EntityType.planet, {"id": "9", "name": "Endor"})

    async def test_add_edge_is_idempotent(self, store):
        async with store.transaction() as tx:
            assert await tx.add_edge(EdgeType.pilots, "1", "4") is False
            assert await tx.add_edge(EdgeType.pilots, "3", "4") is True
            assert tx.writes == 1

    async def test_add_edge_missing_endpoint(self, store):
        with pytest.raises(NotFound) as exc_info:
            async with store.transaction() as tx:
                await tx.add_edge(EdgeType.appears_in, "1", "99")
        assert exc_info.value.details == {"entity_type": "Film", "entity_id": "99"}

    async def test_update_scalar(self, store):
        async with store.transaction() as tx:
            updated = await tx.update_scalar(EntityType.planet, "4", "population", 12.0)
        assert updated.population == 12.0
        assert (await store.get_by_id(EntityType.planet, "4")).population == 12.0

    async def test_update_scalar_missing_row_returns_none(self, store):
        async with store.transaction() as tx:
            assert await tx.update_scalar(EntityType.planet, "99", "population", 1) is None

    async def test_kill_events_are_immutable(self, store):
        with pytest.raises(ValidationFailed) as exc_info:
            async with store.transaction() as tx:
                await tx.update_scalar(EntityType.kill_event, "1", "method", "Force choke")
        assert exc_info.value.violation_code is ViolationCode.IMMUTABLE_ENTITY

    async def test_update_unknown_field(self, store):
        with pytest.raises(ValidationFailed) as exc_info:
            async with store.transaction() as tx:
                await tx.update_scalar(EntityType.planet, "1", "residents", [])
        assert exc_info.value.violation_code is ViolationCode.UNKNOWN_FIELD

    async def test_transaction_unusable_after_exit(self, store):
        async with store.transaction() as tx:
            pass
        with pytest.raises(RuntimeError):
            await tx.get_by_id(EntityType.planet, "1")

    async def test_lock_timeout_raises_conflict(self):
        store = InMemoryEntityStore(config=MutationConfig(lock_timeout_seconds=0.05))
        entered = asyncio.Event()
        release = asyncio.Event()

        async def holder():
            async with store.transaction():
                entered.set()
                await release.wait()

        task = asyncio.create_task(holder())
        await entered.wait()
        with pytest.raises(ConflictRetryable):
            async with store.transaction():
                pass
        release.set()
        await task

    async def test_lock_released_after_timeouts_near_handoff(self):
        store = InMemoryEntityStore(config=MutationConfig(lock_timeout_seconds=0.002))

        async def holder():
            async with store.transaction():
                await asyncio.sleep(0.002)

        async def contender():
            try:
                async with store.transaction() as tx:
                    await tx.update_scalar(EntityType.planet, "1", "population", 1)
            except ConflictRetryable:
                pass

        for _ in range(50):
            await asyncio.gather(holder(), contender())
            assert not store._write_lock.locked()

        async with store.transaction() as tx:
            await tx.insert(EntityType.planet, {"name": "Endor"})
        assert len(await store.list(EntityType.planet)) == 1


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestClose:
    async def test_closed_store_is_unavailable(self, store):
        await store.close()
        with pytest.raises(StoreUnavailable):
            await store.get_by_id(EntityType.character, "1")
        with pytest.raises(StoreUnavailable):
            async with store.transaction():
                pass

    async def test_close_during_transaction_discards_commit(self, store):
        with pytest.raises(StoreUnavailable):
            async with store.transaction() as tx:
                await tx.insert(EntityType.planet, {"name": "Endor"})
                await store.close()
