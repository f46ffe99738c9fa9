"""Daily check-ins: calendar-day streaks and every-third-day bonus rolls."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from datetime import date, datetime

from esko.exceptions import AlreadyCheckedIn
from esko.events import publish_event
from esko.rewards.day_utils import calendar_date, lookback_start, previous_day, utc_now
from esko.rewards.medal_service import award_medals
from esko.rewards.rarity import roll_weighted
from esko.rewards.schemas import CheckIn, CheckInResult, CheckInStatus, MedalSource
from esko.stores.base import RewardStore

logger = logging.getLogger(__name__)

BONUS_EVERY_DAYS = 3
DAILY_MEDALS = 1
DEFAULT_LOOKBACK_DAYS = 366

# (medals, probability %) rolled on every third consecutive day.
STREAK_BONUS_PROBABILITIES: list[tuple[int, float]] = [
    (3, 40),
    (4, 25),
    (5, 15),
    (6, 10),
    (7, 6),
    (8, 3),
    (9, 0.8),
    (10, 0.2),
]


def roll_streak_bonus(rng: random.Random) -> int:
    """Draw bonus medals; residual probability mass pays the minimum of 3."""
    medals = [m for m, _ in STREAK_BONUS_PROBABILITIES]
    weights = [p for _, p in STREAK_BONUS_PROBABILITIES]
    return roll_weighted(rng, medals, weights, STREAK_BONUS_PROBABILITIES[0][0])


def calculate_streak(check_in_dates: Sequence[date], today: date) -> int:
    """Consecutive days ending today or yesterday.

    If the most recent check-in is older than yesterday the streak is broken.
    """
    if not check_in_dates:
        return 0

    ordered = sorted(set(check_in_dates), reverse=True)
    yesterday = previous_day(today)
    most_recent = ordered[0]
    if most_recent not in (today, yesterday):
        return 0

    streak = 0
    expected = most_recent
    for day in ordered:
        if day > expected:
            continue
        if day != expected:
            break
        streak += 1
        expected = previous_day(expected)
    return streak


def days_until_bonus(current_streak: int) -> int:
    """Days until the next bonus check-in, counting the next check-in as 1."""
    if current_streak == 0:
        return BONUS_EVERY_DAYS
    return (BONUS_EVERY_DAYS - current_streak % BONUS_EVERY_DAYS) % BONUS_EVERY_DAYS or BONUS_EVERY_DAYS


async def _recent_check_ins(
    store: RewardStore, user_id: str, today: date, lookback_days: int
) -> list[CheckIn]:
    return await store.check_ins_since(user_id, lookback_start(today, lookback_days))


async def get_check_in_status(
    store: RewardStore,
    user_id: str,
    timezone: str = "UTC",
    now: datetime | None = None,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
) -> CheckInStatus:
    """Check-in availability and streak as seen in the user's timezone."""
    today = calendar_date(now, timezone)
    check_ins = await _recent_check_ins(store, user_id, today, lookback_days)

    today_check_in = next((c for c in check_ins if c.check_in_date == today), None)
    current_streak = calculate_streak([c.check_in_date for c in check_ins], today)

    return CheckInStatus(
        can_check_in=today_check_in is None,
        current_streak=current_streak,
        days_until_bonus=days_until_bonus(current_streak),
        last_check_in=check_ins[0].check_in_date if check_ins else None,
        today_check_in=today_check_in,
    )


async def can_check_in(
    store: RewardStore, user_id: str, timezone: str = "UTC", now: datetime | None = None
) -> bool:
    status = await get_check_in_status(store, user_id, timezone, now)
    return status.can_check_in


async def get_streak(
    store: RewardStore, user_id: str, timezone: str = "UTC", now: datetime | None = None
) -> int:
    status = await get_check_in_status(store, user_id, timezone, now)
    return status.current_streak


async def perform_check_in(
    store: RewardStore,
    user_id: str,
    timezone: str = "UTC",
    now: datetime | None = None,
    rng: random.Random | None = None,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    redis: object = None,
) -> CheckInResult:
    """Record today's check-in and award its medals as one unit.

    Raises AlreadyCheckedIn if today's row exists (including when a
    concurrent call inserted it first) and MissingActor without an alive
    character; neither leaves a check-in row behind.
    """
    if rng is None:
        rng = random.Random()
    if now is None:
        now = utc_now()

    today = calendar_date(now, timezone)

    async with store.transaction():
        status = await get_check_in_status(store, user_id, timezone, now, lookback_days)
        if not status.can_check_in:
            raise AlreadyCheckedIn()

        new_streak_day = status.current_streak + 1
        is_streak_bonus = new_streak_day % BONUS_EVERY_DAYS == 0
        medals = roll_streak_bonus(rng) if is_streak_bonus else DAILY_MEDALS

        check_in = await store.insert_check_in(user_id, today, medals, new_streak_day)
        if check_in is None:
            raise AlreadyCheckedIn()

        description = (
            f"Streak bonus! Day {new_streak_day} check-in reward"
            if is_streak_bonus
            else "Daily check-in reward"
        )
        await award_medals(store, user_id, medals, MedalSource.CHECK_IN, check_in.id, description)

    logger.info("Check-in for %s on %s: day %d, %d medals", user_id, today, new_streak_day, medals)
    await publish_event(redis, "check_in", {
        "user_id": user_id,
        "streak_day": new_streak_day,
        "medals": medals,
        "is_streak_bonus": is_streak_bonus,
    })
    return CheckInResult(
        medals_awarded=medals,
        current_streak=new_streak_day,
        is_streak_bonus=is_streak_bonus,
        check_in=check_in,
    )
