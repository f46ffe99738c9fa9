"""In-process store: unit-of-work semantics and insert-or-ignore behaviour."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from esko.exceptions import InsufficientBalance, MissingActor
from esko.rewards.schemas import MedalSource, RunEvent
from esko.stores.memory import MemoryRewardStore


class TestTransactions:
    @pytest.mark.asyncio
    async def test_failed_scope_restores_every_table(self, store):
        with pytest.raises(InsufficientBalance):
            async with store.transaction():
                await store.record_unlock("runner-1", 1)
                await store.add_to_inventory("runner-1", 1)
                await store.append_transaction("runner-1", 4, MedalSource.CHECK_IN, None, "ok")
                await store.append_transaction("runner-1", -10, MedalSource.PURCHASE, 1, "too much")

        assert store.unlocks == {}
        assert store.inventory_entries == []
        assert store.ledger == []
        assert await store.current_balance("runner-1") == 0

    @pytest.mark.asyncio
    async def test_nested_failure_only_undoes_inner_scope(self, store):
        async with store.transaction():
            await store.append_transaction("runner-1", 5, MedalSource.CHECK_IN, None, "outer")
            with pytest.raises(MissingActor):
                async with store.transaction():
                    await store.record_unlock("runner-1", 2)
                    await store.append_transaction("nobody", 5, MedalSource.REFERRAL, None, "inner")

        assert await store.current_balance("runner-1") == 5
        assert not await store.has_unlocked("runner-1", 2)

    @pytest.mark.asyncio
    async def test_scopes_are_reentrant(self, store):
        async with store.transaction():
            async with store.transaction():
                async with store.transaction():
                    await store.record_unlock("runner-1", 3)
        assert await store.has_unlocked("runner-1", 3)


class TestInsertOrIgnore:
    @pytest.mark.asyncio
    async def test_record_unlock(self, store):
        assert await store.record_unlock("runner-1", 7) is True
        assert await store.record_unlock("runner-1", 7) is False
        assert await store.unlocked_item_ids("runner-1") == {7}

    @pytest.mark.asyncio
    async def test_check_in_per_day(self, store):
        assert await store.insert_check_in("runner-1", date(2026, 4, 1), 1, 1) is not None
        assert await store.insert_check_in("runner-1", date(2026, 4, 1), 1, 1) is None
        assert await store.insert_check_in("runner-1", date(2026, 4, 2), 1, 2) is not None
        recent = await store.check_ins_since("runner-1", date(2026, 4, 1))
        assert [c.check_in_date for c in recent] == [date(2026, 4, 2), date(2026, 4, 1)]

    @pytest.mark.asyncio
    async def test_runs_dedupe_on_external_id(self, store):
        run = RunEvent(external_id="strava-1", distance_meters=5000, occurred_at=datetime.now(timezone.utc))
        stored = await store.insert_run("runner-1", run)
        assert stored.id is not None
        assert await store.insert_run("runner-1", run) is None

    @pytest.mark.asyncio
    async def test_manual_runs_without_external_id_are_kept(self, store):
        run = RunEvent(distance_meters=5000, occurred_at=datetime.now(timezone.utc))
        assert await store.insert_run("runner-1", run) is not None
        assert await store.insert_run("runner-1", run) is not None

    @pytest.mark.asyncio
    async def test_referral_per_referred_user(self, store):
        await store.create_user("bob")
        assert await store.create_referral("runner-1", "bob") is not None
        assert await store.create_referral("someone-else", "bob") is None


class TestCharacters:
    @pytest.mark.asyncio
    async def test_one_alive_character_per_user(self, store):
        with pytest.raises(ValueError):
            await store.create_character("runner-1", "Second")

    @pytest.mark.asyncio
    async def test_increment_run_totals_returns_before_and_after(self, store):
        assert await store.increment_run_totals("runner-1", 3, 12_000) == (0, 3)
        assert await store.increment_run_totals("runner-1", 2, 8_000) == (3, 5)
        assert (await store.active_character("runner-1")).total_distance == 20_000

    @pytest.mark.asyncio
    async def test_increment_without_character(self):
        store = MemoryRewardStore()
        with pytest.raises(MissingActor):
            await store.increment_run_totals("nobody", 1, 1000)
