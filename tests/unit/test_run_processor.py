"""Run reward engine: per-run drops and sync batch processing."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from esko.exceptions import MissingActor
from esko.rewards.medal_service import get_medal_balance
from esko.rewards.referral_service import claim_referral
from esko.rewards.run_processor import RunRewardEngine
from esko.rewards.schemas import CharacterStatus, MedalSource, Rarity, RunEvent, WeatherConditions
from esko.rewards.special import WEATHER_CONDITIONS

NOON = datetime(2026, 6, 10, 12, 0, tzinfo=timezone.utc)
ROUTE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def _run(meters: float, external_id: str | None = None) -> RunEvent:
    return RunEvent(external_id=external_id, distance_meters=meters, occurred_at=NOON)


class TestProcessRun:
    @pytest.mark.asyncio
    async def test_ultra_run_drops_guarantees_and_special(self, store, fixed_rng, fake_redis):
        engine = RunRewardEngine(store, redis=fake_redis, rng=fixed_rng([0.0]))

        result = await engine.process_run("runner-1", _run(100_001))

        assert result.rarities == [
            Rarity.COMMON,
            Rarity.EPIC,
            Rarity.RARE,
            Rarity.LEGENDARY,
            Rarity.RARE,
            Rarity.RARE,
            Rarity.EPIC,
        ]
        assert [item.name for item in result.special_items] == ["Golden Belt Buckle"]
        assert result.medals_awarded == 28
        assert await get_medal_balance(store, "runner-1") == 28
        assert len(await store.inventory("runner-1")) == 7

        (tx,) = await store.transactions("runner-1")
        assert tx.source == MedalSource.ITEM_DROP
        channel, message = fake_redis.published[0]
        assert channel == "pubsub:special_unlock"
        assert json.loads(message)["item_name"] == "Golden Belt Buckle"

    @pytest.mark.asyncio
    async def test_special_only_unlocks_once(self, store, fixed_rng):
        engine = RunRewardEngine(store, rng=fixed_rng([0.0]))
        await engine.process_run("runner-1", _run(100_001))
        second = await engine.process_run("runner-1", _run(100_001))
        assert second.special_items == []
        assert second.medals_awarded == 23

    @pytest.mark.asyncio
    async def test_short_run_drops_nothing(self, store, fixed_rng):
        engine = RunRewardEngine(store, rng=fixed_rng([0.0]))
        result = await engine.process_run("runner-1", _run(800))
        assert result.items == []
        assert result.medals_awarded == 0
        assert store.ledger == []

    @pytest.mark.asyncio
    async def test_dead_character_keeps_items_without_medals(self, store, fixed_rng):
        await store.set_character_status("runner-1", CharacterStatus.DEAD)
        engine = RunRewardEngine(store, rng=fixed_rng([0.0]))
        result = await engine.process_run("runner-1", _run(3000))
        assert len(result.items) == 1
        assert result.medals_awarded == 0
        assert store.ledger == []


class TestProcessSyncBatch:
    @pytest.mark.asyncio
    async def test_batch_rolls_items_and_stages_up(self, store, fixed_rng, fake_redis):
        engine = RunRewardEngine(store, redis=fake_redis, rng=fixed_rng([0.0]))

        result = await engine.process_sync_batch(
            "runner-1", [_run(5000, "strava-1"), _run(500, "strava-2")]
        )

        assert result.synced == 2
        assert result.skipped == 0
        assert result.previous_total_runs == 0
        assert result.new_total_runs == 2
        assert [item.rarity for item in result.awarded_items] == [Rarity.COMMON]
        assert result.progression.to_stage == "hatchling_v1"
        assert result.medals_awarded == 2
        assert result.referral_medals == 0

        character = await store.active_character("runner-1")
        assert character.total_runs == 2
        assert character.total_distance == 5500
        assert character.stage == "hatchling_v1"
        assert character.medal_balance == 2
        assert (await store.inventory("runner-1"))[0].run_id is not None
        assert "pubsub:stage_up" in [channel for channel, _ in fake_redis.published]

    @pytest.mark.asyncio
    async def test_repeat_sync_is_a_no_op(self, store, fixed_rng):
        engine = RunRewardEngine(store, rng=fixed_rng([0.0]))
        runs = [_run(5000, "strava-1"), _run(7000, "strava-2")]
        await engine.process_sync_batch("runner-1", runs)
        balance = await get_medal_balance(store, "runner-1")

        again = await engine.process_sync_batch("runner-1", runs)

        assert again.synced == 0
        assert again.skipped == 2
        assert again.medals_awarded == 0
        assert await get_medal_balance(store, "runner-1") == balance
        assert (await store.active_character("runner-1")).total_runs == 2

    @pytest.mark.asyncio
    async def test_referrer_paid_for_referred_runs(self, store, fixed_rng):
        await store.create_user("alice")
        await store.create_character("alice", "Fern")
        await claim_referral(store, "alice", "RUNNER01")

        engine = RunRewardEngine(store, rng=fixed_rng([0.0]))
        result = await engine.process_sync_batch("alice", [_run(3000, "alice-1")])

        assert result.referral_medals == 5
        assert await store.ledger_total("runner-1") == 10

    @pytest.mark.asyncio
    async def test_missing_character_rejected(self, store, fixed_rng):
        engine = RunRewardEngine(store, rng=fixed_rng([0.0]))
        with pytest.raises(MissingActor):
            await engine.process_sync_batch("ghost", [_run(5000, "ghost-1")])
        assert store.runs == {}


class LockAwareWeather:
    """Reports rain and records whether the store lock was held during the lookup."""

    def __init__(self, store) -> None:
        self.store = store
        self.lock_held: list[bool] = []

    async def conditions_at(self, coordinate, when):
        self.lock_held.append(self.store._lock.locked())
        return WeatherConditions(is_raining=True)


class TestSyncWeather:
    @pytest.mark.asyncio
    async def test_weather_resolved_outside_the_unit_of_work(self, store, fixed_rng):
        weather = LockAwareWeather(store)
        engine = RunRewardEngine(store, weather=weather, rng=fixed_rng([0.0]))
        runs = [
            RunEvent(external_id="wet-1", distance_meters=5000, occurred_at=NOON, polyline=ROUTE),
            RunEvent(external_id="short-1", distance_meters=800, occurred_at=NOON, polyline=ROUTE),
        ]

        result = await engine.process_sync_batch("runner-1", runs)

        assert weather.lock_held == [False]
        assert "Umbrella Hat" in [item.name for item in result.awarded_items]
        stored = {run.external_id: run for run in store.runs.values()}
        assert stored["wet-1"].weather.is_raining
        assert stored["short-1"].weather is None

    @pytest.mark.asyncio
    async def test_no_lookup_once_weather_specials_are_owned(self, store, fixed_rng, fake_weather):
        for item in await store.special_items():
            if item.special_condition in WEATHER_CONDITIONS:
                await store.record_unlock("runner-1", item.id)
        provider = fake_weather(WeatherConditions(is_hot=True))
        engine = RunRewardEngine(store, weather=provider, rng=fixed_rng([0.0]))

        result = await engine.process_sync_batch(
            "runner-1", [RunEvent(external_id="dry-1", distance_meters=5000, occurred_at=NOON, polyline=ROUTE)]
        )

        assert result.synced == 1
        assert provider.calls == []
