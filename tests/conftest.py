"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime

import pytest
import pytest_asyncio

from esko.rewards.schemas import WeatherConditions
from esko.rewards.seed import CATALOG_SEED_DATA
from esko.stores.memory import MemoryRewardStore

RUNNER = "runner-1"
RUNNER_CODE = "RUNNER01"


class QuantileRandom:
    """Stand-in for random.Random: random() replays fixed quantiles in a loop."""

    def __init__(self, values: Sequence[float]) -> None:
        self._values = list(values)
        self._index = 0

    def random(self) -> float:
        value = self._values[self._index % len(self._values)]
        self._index += 1
        return value


class FakeRedis:
    """Records publish() calls."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise ConnectionError("redis down")
        self.published.append((channel, message))
        return 1


class FakeWeather:
    """WeatherProvider double with optional latency and failure."""

    def __init__(
        self,
        conditions: WeatherConditions | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.conditions = conditions
        self.delay = delay
        self.error = error
        self.calls: list[tuple[tuple[float, float], datetime]] = []

    async def conditions_at(self, coordinate: tuple[float, float], when: datetime) -> WeatherConditions | None:
        self.calls.append((coordinate, when))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.conditions


@pytest.fixture
def fixed_rng() -> Callable[[Sequence[float]], QuantileRandom]:
    """Factory for an rng that replays the given quantiles."""
    return QuantileRandom


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def fake_weather() -> type[FakeWeather]:
    return FakeWeather


@pytest_asyncio.fixture
async def store() -> MemoryRewardStore:
    """Seeded catalog plus one user with an alive character."""
    memory = MemoryRewardStore(items=CATALOG_SEED_DATA)
    await memory.create_user(RUNNER, friend_code=RUNNER_CODE)
    await memory.create_character(RUNNER, "Pip")
    return memory
