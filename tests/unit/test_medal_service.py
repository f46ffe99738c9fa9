"""Medal ledger unit tests: balance floor, audit trail and drift."""

from __future__ import annotations

import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from esko.exceptions import InsufficientBalance, InvalidAmount, MissingActor
from esko.rewards.medal_service import (
    RARITY_MEDAL_REWARDS,
    award_medals,
    calculate_medals_for_rarities,
    get_medal_balance,
    get_medal_history,
    spend_medals,
    try_award_medals,
)
from esko.rewards.schemas import CharacterStatus, MedalSource, Rarity
from esko.stores.memory import MemoryRewardStore


class TestRarityMedals:
    def test_reward_table(self):
        assert RARITY_MEDAL_REWARDS == {
            Rarity.COMMON: 1,
            Rarity.UNCOMMON: 2,
            Rarity.RARE: 3,
            Rarity.EPIC: 5,
            Rarity.LEGENDARY: 8,
            Rarity.MYTHIC: 0,
        }

    def test_sum(self):
        assert calculate_medals_for_rarities([Rarity.COMMON, Rarity.EPIC, Rarity.LEGENDARY]) == 14
        assert calculate_medals_for_rarities([]) == 0


class TestAwardMedals:
    @pytest.mark.asyncio
    async def test_award_updates_balance_and_ledger(self, store):
        tx = await award_medals(store, "runner-1", 7, MedalSource.CHECK_IN, 12, "Daily check-in reward")
        assert tx.amount == 7
        assert tx.source == MedalSource.CHECK_IN
        assert tx.source_id == 12
        assert await get_medal_balance(store, "runner-1") == 7
        assert await store.ledger_total("runner-1") == 7

    @pytest.mark.asyncio
    async def test_default_description(self, store):
        tx = await award_medals(store, "runner-1", 3, MedalSource.ITEM_DROP)
        assert tx.description == "Earned 3 Medals"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -4])
    async def test_non_positive_amount_rejected(self, store, amount):
        with pytest.raises(InvalidAmount):
            await award_medals(store, "runner-1", amount, MedalSource.ITEM_DROP)
        assert store.ledger == []

    @pytest.mark.asyncio
    async def test_no_character_raises_missing_actor(self, store):
        await store.set_character_status("runner-1", CharacterStatus.DEAD)
        with pytest.raises(MissingActor) as exc_info:
            await award_medals(store, "runner-1", 5, MedalSource.REFERRAL)
        assert exc_info.value.user_id == "runner-1"
        assert store.ledger == []

    @pytest.mark.asyncio
    async def test_try_award_swallows_missing_actor(self, store):
        assert await try_award_medals(store, "nobody", 5, MedalSource.PROGRESSION) is None
        assert await get_medal_balance(store, "nobody") == 0


class TestSpendMedals:
    @pytest.mark.asyncio
    async def test_spend_writes_negative_purchase(self, store):
        await award_medals(store, "runner-1", 60, MedalSource.CHECK_IN)
        tx = await spend_medals(store, "runner-1", 50, item_id=99)
        assert tx.amount == -50
        assert tx.source == MedalSource.PURCHASE
        assert tx.source_id == 99
        assert await get_medal_balance(store, "runner-1") == 10

    @pytest.mark.asyncio
    async def test_overdraw_rejected_without_side_effects(self, store):
        await award_medals(store, "runner-1", 10, MedalSource.CHECK_IN)
        with pytest.raises(InsufficientBalance) as exc_info:
            await spend_medals(store, "runner-1", 11, item_id=1)
        assert exc_info.value.balance == 10
        assert exc_info.value.requested == 11
        assert await get_medal_balance(store, "runner-1") == 10
        assert len(store.ledger) == 1

    @pytest.mark.asyncio
    async def test_store_enforces_floor(self, store):
        with pytest.raises(InsufficientBalance):
            await store.append_transaction("runner-1", -1, MedalSource.PURCHASE, 1, "direct")
        assert await get_medal_balance(store, "runner-1") == 0


class TestMedalHistory:
    @pytest.mark.asyncio
    async def test_most_recent_first_with_limit(self, store):
        for amount in (1, 2, 3):
            await award_medals(store, "runner-1", amount, MedalSource.ITEM_DROP)
        history = await get_medal_history(store, "runner-1", limit=2)
        assert [tx.amount for tx in history] == [3, 2]


_operations = st.lists(
    st.tuples(st.sampled_from(["award", "spend"]), st.integers(min_value=1, max_value=40)),
    max_size=30,
)


async def _replay(operations: list[tuple[str, int]]) -> tuple[int, int, int]:
    store = MemoryRewardStore()
    await store.create_user("runner-1")
    await store.create_character("runner-1", "Pip")
    expected = 0
    for kind, amount in operations:
        if kind == "award":
            await award_medals(store, "runner-1", amount, MedalSource.ITEM_DROP)
            expected += amount
        else:
            try:
                await spend_medals(store, "runner-1", amount, item_id=1)
            except InsufficientBalance:
                continue
            expected -= amount
    return await get_medal_balance(store, "runner-1"), await store.ledger_total("runner-1"), expected


class TestLedgerProperties:
    @given(operations=_operations)
    @settings(max_examples=75, deadline=None)
    def test_balance_never_drifts_from_ledger(self, operations):
        balance, ledger_total, expected = asyncio.run(_replay(operations))
        assert balance == ledger_total == expected
        assert balance >= 0
