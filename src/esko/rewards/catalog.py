"""Catalog lookup: turns a rolled rarity into a concrete item."""

from __future__ import annotations

import logging
import random

from esko.rewards.schemas import CatalogItem, Rarity
from esko.stores.base import CatalogStore

logger = logging.getLogger(__name__)


def pick_uniform(rng: random.Random, items: list[CatalogItem]) -> CatalogItem | None:
    """Select uniformly using a single rng.random() draw."""
    if not items:
        return None
    index = min(int(rng.random() * len(items)), len(items) - 1)
    return items[index]


async def draw_item(store: CatalogStore, rarity: Rarity, rng: random.Random) -> CatalogItem | None:
    """Draw a random non-special item of the given rarity.

    An empty pool is a catalog configuration gap: it yields None, never raises.
    """
    pool = await store.items_by_rarity(rarity, exclude_special=True)
    if not pool:
        logger.warning("Catalog has no %s items; draw yields nothing", rarity.value)
        return None
    return pick_uniform(rng, pool)


async def draw_items(store: CatalogStore, rarities: list[Rarity], rng: random.Random) -> list[CatalogItem]:
    """Resolve each rarity to an item, dropping draws that hit an empty pool."""
    items: list[CatalogItem] = []
    for rarity in rarities:
        item = await draw_item(store, rarity, rng)
        if item is not None:
            items.append(item)
    return items
