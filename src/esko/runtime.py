"""Process wiring: settings into logging, database, Redis and the engines."""

from __future__ import annotations

import logging
import random
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from esko.config import Settings, get_settings
from esko.database import close_db, init_db, open_store
from esko.log_config import setup_logging
from esko.redis_client import close_redis, event_redis, init_redis
from esko.rewards.checkin_service import perform_check_in
from esko.rewards.run_processor import RunRewardEngine
from esko.rewards.schemas import CheckInResult
from esko.rewards.seed import seed_catalog
from esko.rewards.weather import OpenWeatherMapProvider
from esko.stores.base import RewardStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncGenerator[Settings, None]:
    """Startup and shutdown lifecycle for a worker process."""
    settings = settings or get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Seed the catalog (idempotent)
    try:
        async with open_store() as store:
            async with store.transaction():
                await seed_catalog(store)
    except Exception:
        logger.warning("Catalog seeding failed (tables may not exist yet)", exc_info=True)

    logger.info("Reward engine %s started (%s)", settings.app_version, settings.environment)
    try:
        yield settings
    finally:
        await close_db()
        await close_redis()


def weather_provider(settings: Settings) -> OpenWeatherMapProvider | None:
    """OpenWeatherMap lookups, or None when no API key is configured."""
    if not settings.openweathermap_api_key:
        return None
    return OpenWeatherMapProvider(
        settings.openweathermap_api_key,
        base_url=settings.weather_base_url,
        timeout=settings.weather_timeout_seconds,
    )


def build_engine(
    store: RewardStore,
    settings: Settings | None = None,
    rng: random.Random | None = None,
) -> RunRewardEngine:
    """A RunRewardEngine configured from settings."""
    settings = settings or get_settings()
    return RunRewardEngine(
        store,
        weather=weather_provider(settings),
        redis=event_redis(),
        rng=rng,
        weather_timeout=settings.weather_timeout_seconds,
    )


async def check_in(
    store: RewardStore,
    user_id: str,
    timezone: str | None = None,
    settings: Settings | None = None,
) -> CheckInResult:
    """perform_check_in with the configured lookback and default timezone."""
    settings = settings or get_settings()
    return await perform_check_in(
        store,
        user_id,
        timezone or settings.default_timezone,
        lookback_days=settings.check_in_lookback_days,
        redis=event_redis(),
    )
