"""Distance-keyed rarity rolling.

Every draw takes an injected ``random.Random`` so rolls are reproducible
under a fixed seed. Only ``rng.random()`` is consumed.
"""

from __future__ import annotations

import random
from collections.abc import Sequence
from typing import TypeVar

from esko.rewards.schemas import Rarity

T = TypeVar("T")

MIN_REWARD_DISTANCE_METERS = 1000

# Tiers eligible for the standard weighted drop, in draw order.
ROLL_TIERS: list[Rarity] = [
    Rarity.COMMON,
    Rarity.UNCOMMON,
    Rarity.RARE,
    Rarity.EPIC,
    Rarity.LEGENDARY,
]

# (lower bound km inclusive, upper bound km exclusive or None, [common, uncommon, rare, epic, legendary])
DISTANCE_BUCKETS: list[tuple[int, int | None, list[float]]] = [
    (1, 5, [68, 24, 6, 1.5, 0.5]),
    (5, 10, [55, 25, 13, 5, 2]),
    (10, 15, [45, 25, 18, 8, 4]),
    (15, 20, [35, 25, 22, 12, 6]),
    (20, 30, [25, 25, 28, 15, 7]),
    (30, 40, [18, 22, 30, 18, 12]),
    (40, None, [10, 20, 32, 22, 16]),
]


def roll_weighted(
    rng: random.Random,
    outcomes: Sequence[T],
    weights: Sequence[float],
    default: T,
) -> T:
    """Draw one outcome from percentage weights summing to 100.

    A uniform value in [0, 100) selects the first outcome whose cumulative
    weight exceeds it. Residual mass left by rounding falls back to default.
    """
    roll = rng.random() * 100
    cumulative = 0.0
    for outcome, weight in zip(outcomes, weights, strict=True):
        cumulative += weight
        if roll < cumulative:
            return outcome
    return default


def bucket_for_distance(meters: float) -> tuple[int, int | None, list[float]] | None:
    """Find the probability bucket for a run distance, or None under 1 km."""
    km = meters / 1000
    if km < 1:
        return None
    for bucket in DISTANCE_BUCKETS:
        low, high, _ = bucket
        if km >= low and (high is None or km < high):
            return bucket
    return None


def bucket_label(meters: float) -> str:
    """Human-readable bucket key, e.g. '1-5' or '40+'. Empty under 1 km."""
    bucket = bucket_for_distance(meters)
    if bucket is None:
        return ""
    low, high, _ = bucket
    return f"{low}-{high}" if high is not None else f"{low}+"


def roll_rarity(meters: float, rng: random.Random) -> list[Rarity]:
    """Roll the standard drop for a run. Returns zero or one rarity."""
    if meters < MIN_REWARD_DISTANCE_METERS:
        return []
    bucket = bucket_for_distance(meters)
    if bucket is None:
        return []
    return [roll_weighted(rng, ROLL_TIERS, bucket[2], Rarity.COMMON)]
