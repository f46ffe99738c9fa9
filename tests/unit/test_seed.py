"""Catalog seed data."""

from __future__ import annotations

from collections import Counter

import pytest

from esko.rewards.rarity import ROLL_TIERS
from esko.rewards.schemas import Rarity, SpecialCondition
from esko.rewards.seed import CATALOG_SEED_DATA, MYTHIC_PRICE, seed_catalog
from esko.stores.memory import MemoryRewardStore


class TestSeedData:
    def test_ids_and_names_unique(self):
        assert len({item.id for item in CATALOG_SEED_DATA}) == len(CATALOG_SEED_DATA)
        assert len({item.name for item in CATALOG_SEED_DATA}) == len(CATALOG_SEED_DATA)

    def test_every_rolled_tier_has_regular_items(self):
        regular = Counter(item.rarity for item in CATALOG_SEED_DATA if not item.is_special_reward)
        for rarity in ROLL_TIERS:
            assert regular[rarity] > 0

    def test_every_run_condition_has_a_special(self):
        conditions = {item.special_condition for item in CATALOG_SEED_DATA if item.is_special_reward}
        assert conditions == set(SpecialCondition)

    def test_mythics_are_shop_only(self):
        mythics = [item for item in CATALOG_SEED_DATA if item.rarity == Rarity.MYTHIC]
        assert len(mythics) == 5
        for item in mythics:
            assert item.price == MYTHIC_PRICE
            assert item.special_condition == SpecialCondition.PURCHASE

    def test_image_urls(self):
        item = next(item for item in CATALOG_SEED_DATA if item.name == "Laz's Flannel")
        assert item.image_url == "/items/laz-s-flannel.png"


class TestSeedCatalog:
    @pytest.mark.asyncio
    async def test_seed_is_idempotent(self):
        store = MemoryRewardStore()
        assert await seed_catalog(store) == len(CATALOG_SEED_DATA)
        assert await seed_catalog(store) == len(CATALOG_SEED_DATA)
        assert len(store.items) == len(CATALOG_SEED_DATA)
        assert len(await store.special_items()) == 13
