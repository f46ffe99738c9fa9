"""Catalog lookup unit tests."""

from __future__ import annotations

import logging

import pytest

from esko.rewards.catalog import draw_item, draw_items, pick_uniform
from esko.rewards.schemas import CatalogItem, Rarity, SpecialCondition
from esko.stores.memory import MemoryRewardStore

ITEMS = [
    CatalogItem(id=1, name="Banana Peel", rarity=Rarity.COMMON),
    CatalogItem(id=2, name="Bandana", rarity=Rarity.COMMON),
    CatalogItem(id=3, name="Foil Blanket", rarity=Rarity.COMMON),
    CatalogItem(
        id=4,
        name="Umbrella Hat",
        rarity=Rarity.RARE,
        is_special_reward=True,
        special_condition=SpecialCondition.RAINING,
    ),
]


class TestPickUniform:
    def test_first_and_last(self, fixed_rng):
        assert pick_uniform(fixed_rng([0.0]), ITEMS[:3]).id == 1
        assert pick_uniform(fixed_rng([0.9999]), ITEMS[:3]).id == 3

    def test_empty(self, fixed_rng):
        assert pick_uniform(fixed_rng([0.5]), []) is None


class TestDrawItem:
    @pytest.mark.asyncio
    async def test_draws_from_matching_rarity(self, fixed_rng):
        store = MemoryRewardStore(items=ITEMS)
        item = await draw_item(store, Rarity.COMMON, fixed_rng([0.5]))
        assert item.id == 2

    @pytest.mark.asyncio
    async def test_special_items_are_excluded(self, fixed_rng):
        store = MemoryRewardStore(items=ITEMS)
        assert await draw_item(store, Rarity.RARE, fixed_rng([0.0])) is None

    @pytest.mark.asyncio
    async def test_empty_pool_logs_and_yields_none(self, fixed_rng, caplog):
        store = MemoryRewardStore(items=[])
        with caplog.at_level(logging.WARNING, logger="esko.rewards.catalog"):
            assert await draw_item(store, Rarity.LEGENDARY, fixed_rng([0.0])) is None
        assert "no legendary items" in caplog.text

    @pytest.mark.asyncio
    async def test_draw_items_skips_empty_pools(self, fixed_rng):
        store = MemoryRewardStore(items=ITEMS)
        items = await draw_items(store, [Rarity.COMMON, Rarity.EPIC, Rarity.COMMON], fixed_rng([0.0]))
        assert [item.id for item in items] == [1, 1]
