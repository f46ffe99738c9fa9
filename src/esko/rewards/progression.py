"""Companion stage thresholds and stage-up medal rewards.

Stage is a pure step function of cumulative run count. The canonical table
is the reward banding (0/1/3/7/15/30/60/100); the finer 8-step display
banding is not used for rewards.
"""

from __future__ import annotations

import logging

from esko.rewards.medal_service import try_award_medals
from esko.rewards.schemas import MedalSource, ProgressionReward
from esko.stores.base import RewardStore

logger = logging.getLogger(__name__)

# Minimum total runs for each stage, ascending.
STAGE_THRESHOLDS: list[dict] = [
    {"stage": "egg", "min_runs": 0},
    {"stage": "hatchling_v1", "min_runs": 1},
    {"stage": "hatchling_v2", "min_runs": 3},
    {"stage": "child", "min_runs": 7},
    {"stage": "adolescent", "min_runs": 15},
    {"stage": "young_adult", "min_runs": 30},
    {"stage": "mature", "min_runs": 60},
    {"stage": "maxed", "min_runs": 100},
]

STAGES: list[str] = [row["stage"] for row in STAGE_THRESHOLDS]

PROGRESSION_REWARDS: dict[str, int] = {
    "egg_to_hatchling_v1": 1,
    "hatchling_v1_to_hatchling_v2": 2,
    "hatchling_v2_to_child": 2,
    "child_to_adolescent": 3,
    "adolescent_to_young_adult": 5,
    "young_adult_to_mature": 7,
    "mature_to_maxed": 10,
}


def compute_stage(total_runs: int) -> str:
    """Stage name for a cumulative run count."""
    current = STAGE_THRESHOLDS[0]["stage"]
    for row in STAGE_THRESHOLDS:
        if total_runs >= row["min_runs"]:
            current = row["stage"]
    return current


def transition_key(from_stage: str, to_stage: str) -> str:
    return f"{from_stage}_to_{to_stage}"


def stage_transition_reward(previous_total_runs: int, new_total_runs: int) -> ProgressionReward | None:
    """Reward for moving between the before/after stages, if any.

    A jump across several stages pays once: the reward for entering the
    final stage. Intermediate stages pay nothing.
    """
    from_stage = compute_stage(previous_total_runs)
    to_stage = compute_stage(new_total_runs)
    if from_stage == to_stage or STAGES.index(to_stage) < STAGES.index(from_stage):
        return None

    entering_key = transition_key(STAGES[STAGES.index(to_stage) - 1], to_stage)
    medals = PROGRESSION_REWARDS.get(entering_key)
    if not medals:
        return None

    return ProgressionReward(
        from_stage=from_stage,
        to_stage=to_stage,
        transition_key=transition_key(from_stage, to_stage),
        medals_awarded=medals,
    )


async def check_progression_reward(
    store: RewardStore,
    user_id: str,
    previous_total_runs: int,
    new_total_runs: int,
) -> ProgressionReward | None:
    """Award the stage-up reward for a change in total runs.

    Updates the cached stage. Returns None when the stage did not advance or
    the character is gone.
    """
    reward = stage_transition_reward(previous_total_runs, new_total_runs)
    if reward is None:
        return None

    async with store.transaction():
        await store.update_stage(user_id, reward.to_stage)
        transaction = await try_award_medals(
            store,
            user_id,
            reward.medals_awarded,
            MedalSource.PROGRESSION,
            None,
            f"Stage reached: {reward.to_stage.replace('_', ' ')}",
        )

    if transaction is None:
        return None

    logger.info("Stage up for %s: %s (+%d medals)", user_id, reward.transition_key, reward.medals_awarded)
    return reward
