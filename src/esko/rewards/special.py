"""One-time special rewards gated by weather, time, date or distance."""

from __future__ import annotations

import logging
from collections.abc import Callable

from esko.rewards.schemas import CatalogItem, RunEvent, SpecialCondition, WeatherConditions
from esko.rewards.weather import WeatherProvider, fetch_run_weather
from esko.stores.base import RewardStore

logger = logging.getLogger(__name__)

ULTRA_DISTANCE_KM = 100

WEATHER_CONDITIONS = frozenset({
    SpecialCondition.HOT,
    SpecialCondition.COLD,
    SpecialCondition.SNOWING,
    SpecialCondition.RAINING,
})


class RunContext:
    """The facts a special-reward predicate can look at."""

    def __init__(self, run: RunEvent, weather: WeatherConditions) -> None:
        local = run.local_time()
        self.weather = weather
        self.hour = local.hour
        self.month = local.month
        self.day = local.day
        self.distance_km = run.distance_meters / 1000


PREDICATES: dict[SpecialCondition, Callable[[RunContext], bool]] = {
    SpecialCondition.HOT: lambda ctx: ctx.weather.is_hot,
    SpecialCondition.COLD: lambda ctx: ctx.weather.is_cold,
    SpecialCondition.SNOWING: lambda ctx: ctx.weather.is_snowing,
    SpecialCondition.RAINING: lambda ctx: ctx.weather.is_raining,
    SpecialCondition.BEFORE_6AM: lambda ctx: ctx.hour < 6,
    SpecialCondition.AFTER_10PM: lambda ctx: ctx.hour >= 22,
    SpecialCondition.FEB_14: lambda ctx: ctx.month == 2 and ctx.day == 14,
    SpecialCondition.OVER_100KM: lambda ctx: ctx.distance_km > ULTRA_DISTANCE_KM,
}


def condition_matches(condition: SpecialCondition | None, ctx: RunContext) -> bool:
    """Evaluate a single predicate. Unknown or shop-only conditions never match."""
    if condition is None:
        return False
    predicate = PREDICATES.get(condition)
    return predicate is not None and predicate(ctx)


def match_items(
    items: list[CatalogItem],
    unlocked_ids: set[int],
    ctx: RunContext,
) -> list[CatalogItem]:
    """Pure matching step: every not-yet-unlocked special whose predicate holds."""
    return [
        item
        for item in items
        if item.is_special_reward
        and item.id not in unlocked_ids
        and condition_matches(item.special_condition, ctx)
    ]


async def needs_weather(store: RewardStore, user_id: str) -> bool:
    """True while the user still has a weather-gated special to earn."""
    unlocked = await store.unlocked_item_ids(user_id)
    return any(
        item.special_condition in WEATHER_CONDITIONS and item.id not in unlocked
        for item in await store.special_items()
    )


async def match_special_rewards(
    store: RewardStore,
    user_id: str,
    run: RunEvent,
    weather: WeatherProvider | None = None,
    weather_timeout: float = 3.0,
) -> list[CatalogItem]:
    """Find special items this run unlocks for the user.

    Predicates are evaluated per catalog item, so two items sharing a
    condition both match. Weather is only looked up when some pending
    special depends on it.
    """
    specials = await store.special_items()
    if not specials:
        return []

    unlocked = await store.unlocked_item_ids(user_id)
    pending = [item for item in specials if item.id not in unlocked]
    if not pending:
        return []

    if any(item.special_condition in WEATHER_CONDITIONS for item in pending):
        conditions = await fetch_run_weather(weather, run, weather_timeout)
    else:
        conditions = WeatherConditions()

    matched = match_items(pending, unlocked, RunContext(run, conditions))
    for item in matched:
        logger.info(
            "Special reward matched for %s: %s (condition: %s)",
            user_id, item.name, item.special_condition.value if item.special_condition else None,
        )
    return matched
