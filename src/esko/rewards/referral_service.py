"""Referral payouts: one-off bonuses plus capped per-run accrual to the referrer."""

from __future__ import annotations

import logging

from esko.exceptions import (
    AlreadyReferred,
    InvalidReferralCode,
    MissingActor,
    SelfReferral,
)
from esko.rewards.friend_codes import is_well_formed, normalize_friend_code
from esko.rewards.medal_service import award_medals
from esko.rewards.schemas import MedalSource, ReferralClaim, ReferralStats
from esko.stores.base import RewardStore

logger = logging.getLogger(__name__)

MAX_MEDALS_PER_REFERRAL = 25
SIGNUP_BONUS = 5
FIRST_RUN_BONUS = 5
PER_RUN_BONUS = 1
WELCOME_BONUS = 5


def compute_referral_payout(previous_total_runs: int, new_total_runs: int, already_earned: int) -> int:
    """Medals owed to the referrer for a batch of runs, clamped to the cap."""
    new_runs = new_total_runs - previous_total_runs
    if new_runs <= 0:
        return 0

    if previous_total_runs == 0:
        payout = FIRST_RUN_BONUS + (new_runs - 1) * PER_RUN_BONUS
    else:
        payout = new_runs * PER_RUN_BONUS

    remaining = MAX_MEDALS_PER_REFERRAL - already_earned
    return max(0, min(payout, remaining))


async def claim_referral(store: RewardStore, referred_user_id: str, referral_code: str) -> ReferralClaim:
    """Link a new user to their referrer and pay the one-off bonuses.

    The referred user's welcome bonus is required; the referrer's signup
    bonus is best-effort and skipped if their character has died.
    """
    if await store.referral_for(referred_user_id) is not None:
        raise AlreadyReferred()

    if not is_well_formed(referral_code):
        raise InvalidReferralCode()
    referrer_id = await store.user_by_friend_code(normalize_friend_code(referral_code))
    if referrer_id is None:
        raise InvalidReferralCode()
    if referrer_id == referred_user_id:
        raise SelfReferral()

    if await store.active_character(referred_user_id) is None:
        raise MissingActor(referred_user_id)

    async with store.transaction():
        referral = await store.create_referral(referrer_id, referred_user_id)
        if referral is None:
            raise AlreadyReferred()

        await award_medals(
            store,
            referred_user_id,
            WELCOME_BONUS,
            MedalSource.REFERRAL,
            referral.id,
            "Welcome bonus from referral",
        )

        signup_bonus = min(SIGNUP_BONUS, MAX_MEDALS_PER_REFERRAL)
        signup_paid = False
        try:
            async with store.transaction():
                await award_medals(
                    store,
                    referrer_id,
                    signup_bonus,
                    MedalSource.REFERRAL,
                    referral.id,
                    "Referral bonus: new user joined",
                )
                await store.increment_referral_medals(referral.id, signup_bonus)
                signup_paid = True
        except MissingActor:
            logger.warning("Referrer %s has no active character; signup bonus skipped", referrer_id)

    referral = await store.referral_for(referred_user_id) or referral
    logger.info("Referral claimed: %s referred by %s", referred_user_id, referrer_id)
    return ReferralClaim(referral=referral, welcome_bonus=WELCOME_BONUS, signup_bonus_paid=signup_paid)


async def process_referral_run_medals(
    store: RewardStore,
    referred_user_id: str,
    previous_total_runs: int,
    new_total_runs: int,
) -> int:
    """Accrue medals to the referrer for newly synced runs. Returns medals paid."""
    new_runs = new_total_runs - previous_total_runs
    description = (
        "Referral: first run by referred user"
        if previous_total_runs == 0
        else f"Referral: {new_runs} new run{'s' if new_runs > 1 else ''} by referred user"
    )

    try:
        async with store.transaction():
            referral = await store.referral_for(referred_user_id, for_update=True)
            if referral is None:
                return 0

            payout = compute_referral_payout(
                previous_total_runs, new_total_runs, referral.medals_earned_from_referral
            )
            if payout <= 0:
                return 0

            await award_medals(
                store, referral.referrer_id, payout, MedalSource.REFERRAL, referral.id, description
            )
            await store.increment_referral_medals(
                referral.id, referral.medals_earned_from_referral + payout
            )
    except MissingActor as exc:
        logger.warning("Referrer %s has no active character; run payout skipped", exc.user_id)
        return 0

    return payout


async def get_referral_stats(store: RewardStore, user_id: str) -> ReferralStats:
    """Referrals made by the user, medals earned from them, and who referred the user."""
    referrals = await store.referrals_by(user_id)
    referred_by = await store.referral_for(user_id)
    return ReferralStats(
        total_referrals=len(referrals),
        total_medals_earned=sum(r.medals_earned_from_referral for r in referrals),
        referred_by=referred_by.referrer_id if referred_by else None,
        referred_at=referred_by.created_at if referred_by else None,
    )
