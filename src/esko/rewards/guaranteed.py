"""Guaranteed bonus drops for ultra-distance runs."""

from __future__ import annotations

import random

from esko.rewards.rarity import roll_weighted
from esko.rewards.schemas import Rarity

GUARANTEE_50K_METERS = 50_000
GUARANTEE_100K_METERS = 100_000

BONUS_TIERS: list[Rarity] = [Rarity.RARE, Rarity.EPIC, Rarity.LEGENDARY]
BONUS_WEIGHTS: list[float] = [50, 35, 15]


def roll_bonus_tier(rng: random.Random) -> Rarity:
    """One draw from the restricted rare/epic/legendary table."""
    return roll_weighted(rng, BONUS_TIERS, BONUS_WEIGHTS, Rarity.RARE)


def roll_guaranteed(meters: float, rng: random.Random) -> list[Rarity]:
    """Extra rarities on top of the standard drop.

    50 km+: one epic plus one bonus draw.
    100 km+: the 50 km set, then one legendary plus two bonus draws.
    """
    drops: list[Rarity] = []

    if meters >= GUARANTEE_50K_METERS:
        drops.append(Rarity.EPIC)
        drops.append(roll_bonus_tier(rng))

    if meters >= GUARANTEE_100K_METERS:
        drops.append(Rarity.LEGENDARY)
        for _ in range(2):
            drops.append(roll_bonus_tier(rng))

    return drops
