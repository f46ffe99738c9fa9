"""Run reward engine: turns processed runs into items, medals and stage-ups."""

from __future__ import annotations

import asyncio
import logging
import random

import structlog

from esko.events import publish_event
from esko.exceptions import MissingActor
from esko.rewards.catalog import draw_items
from esko.rewards.guaranteed import roll_guaranteed
from esko.rewards.medal_service import calculate_medals_for_rarities, try_award_medals
from esko.rewards.progression import check_progression_reward
from esko.rewards.rarity import MIN_REWARD_DISTANCE_METERS, roll_rarity
from esko.rewards.referral_service import process_referral_run_medals
from esko.rewards.schemas import CatalogItem, MedalSource, RunEvent, RunRewardResult, SyncResult
from esko.rewards.special import match_special_rewards, needs_weather
from esko.rewards.weather import WeatherProvider, fetch_run_weather
from esko.stores.base import RewardStore

logger = logging.getLogger(__name__)


class RunRewardEngine:
    """Evaluates reward rules for run events, once per event."""

    def __init__(
        self,
        store: RewardStore,
        weather: WeatherProvider | None = None,
        redis: object = None,
        rng: random.Random | None = None,
        weather_timeout: float = 3.0,
    ) -> None:
        self.store = store
        self.weather = weather
        self.redis = redis
        self.rng = rng if rng is not None else random.Random()
        self.weather_timeout = weather_timeout

    async def roll_items(self, distance_meters: float) -> list[CatalogItem]:
        """Standard drop plus guaranteed ultra-distance drops, resolved to items."""
        rarities = roll_rarity(distance_meters, self.rng) + roll_guaranteed(distance_meters, self.rng)
        return await draw_items(self.store, rarities, self.rng)

    async def process_run(self, user_id: str, run: RunEvent) -> RunRewardResult:
        """Roll, match specials, store the items and pay item-drop medals."""
        rolled = await self.roll_items(run.distance_meters)
        specials = await match_special_rewards(
            self.store, user_id, run, self.weather, self.weather_timeout
        )

        unlocked_specials: list[CatalogItem] = []
        async with self.store.transaction():
            for item in rolled:
                await self.store.add_to_inventory(user_id, item.id, run.id)
                await self.store.record_unlock(user_id, item.id)

            for item in specials:
                # Losing the unlock race means another request already awarded it.
                if await self.store.record_unlock(user_id, item.id):
                    await self.store.add_to_inventory(user_id, item.id, run.id)
                    unlocked_specials.append(item)

            items = rolled + unlocked_specials
            rarities = [item.rarity for item in items]
            medals = calculate_medals_for_rarities(rarities)
            if medals > 0:
                transaction = await try_award_medals(
                    self.store,
                    user_id,
                    medals,
                    MedalSource.ITEM_DROP,
                    run.id,
                    f"Item drops from run: {', '.join(r.value for r in rarities)}",
                )
                if transaction is None:
                    medals = 0

        for item in unlocked_specials:
            logger.info("Special reward unlocked for %s: %s", user_id, item.name)
            await publish_event(self.redis, "special_unlock", {
                "user_id": user_id,
                "item_id": item.id,
                "item_name": item.name,
                "condition": item.special_condition.value if item.special_condition else None,
            })

        return RunRewardResult(
            items=items,
            rarities=rarities,
            special_items=unlocked_specials,
            medals_awarded=medals,
        )

    async def attach_weather(self, user_id: str, runs: list[RunEvent]) -> list[RunEvent]:
        """Resolve weather for rewardable runs before any unit of work opens.

        Lookups run outside any transaction or store lock. Runs that already
        carry weather are kept as they are.
        """
        if self.weather is None or not await needs_weather(self.store, user_id):
            return runs

        async def resolve(run: RunEvent) -> RunEvent:
            if run.weather is not None or run.distance_meters < MIN_REWARD_DISTANCE_METERS:
                return run
            conditions = await fetch_run_weather(self.weather, run, self.weather_timeout)
            return run.model_copy(update={"weather": conditions})

        return list(await asyncio.gather(*(resolve(run) for run in runs)))

    async def process_sync_batch(self, user_id: str, runs: list[RunEvent]) -> SyncResult:
        """Apply a batch of synced runs as one unit of work.

        Runs already stored (same external id) are skipped, so repeating a
        sync is a no-op. Stage-up and referral payouts are computed once for
        the whole batch from the before/after run totals.
        """
        with structlog.contextvars.bound_contextvars(user_id=user_id):
            result = SyncResult()
            runs = await self.attach_weather(user_id, runs)
            async with self.store.transaction():
                if await self.store.active_character(user_id) is None:
                    raise MissingActor(user_id)

                new_runs: list[RunEvent] = []
                for run in runs:
                    stored = await self.store.insert_run(user_id, run)
                    if stored is None:
                        result.skipped += 1
                        continue
                    new_runs.append(stored)

                if not new_runs:
                    return result

                for run in new_runs:
                    if run.distance_meters < MIN_REWARD_DISTANCE_METERS:
                        continue
                    run_result = await self.process_run(user_id, run)
                    result.awarded_items.extend(run_result.items)
                    result.medals_awarded += run_result.medals_awarded

                distance = sum(int(round(run.distance_meters)) for run in new_runs)
                previous_total, new_total = await self.store.increment_run_totals(
                    user_id, len(new_runs), distance
                )
                result.synced = len(new_runs)
                result.previous_total_runs = previous_total
                result.new_total_runs = new_total

                result.progression = await check_progression_reward(
                    self.store, user_id, previous_total, new_total
                )
                if result.progression is not None:
                    result.medals_awarded += result.progression.medals_awarded

                result.referral_medals = await process_referral_run_medals(
                    self.store, user_id, previous_total, new_total
                )

            if result.progression is not None:
                await publish_event(self.redis, "stage_up", {
                    "user_id": user_id,
                    "from_stage": result.progression.from_stage,
                    "to_stage": result.progression.to_stage,
                    "medals": result.progression.medals_awarded,
                })

            logger.info(
                "Synced %d runs for %s (%d skipped, %d medals)",
                result.synced, user_id, result.skipped, result.medals_awarded,
            )
            return result
