"""Medal ledger: append-only transactions with a denormalized balance."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from esko.exceptions import InsufficientBalance, InvalidAmount, MissingActor
from esko.rewards.schemas import MedalSource, MedalTransaction, Rarity
from esko.stores.base import LedgerStore

logger = logging.getLogger(__name__)

# Medals earned per item drop. Mythic items only come from the shop.
RARITY_MEDAL_REWARDS: dict[Rarity, int] = {
    Rarity.COMMON: 1,
    Rarity.UNCOMMON: 2,
    Rarity.RARE: 3,
    Rarity.EPIC: 5,
    Rarity.LEGENDARY: 8,
    Rarity.MYTHIC: 0,
}


def calculate_medals_for_rarities(rarities: Iterable[Rarity]) -> int:
    """Total medals for a set of dropped rarities."""
    return sum(RARITY_MEDAL_REWARDS.get(rarity, 0) for rarity in rarities)


async def award_medals(
    store: LedgerStore,
    user_id: str,
    amount: int,
    source: MedalSource,
    source_id: int | None = None,
    description: str | None = None,
) -> MedalTransaction:
    """Credit medals to the user's alive character.

    Raises InvalidAmount for non-positive amounts and MissingActor when the
    user has no alive character. Batch callers catch MissingActor.
    """
    if amount <= 0:
        raise InvalidAmount("Award amount must be positive")

    transaction = await store.append_transaction(
        user_id,
        amount,
        source,
        source_id,
        description or f"Earned {amount} Medals",
    )
    logger.debug("Awarded %d medals to %s (%s)", amount, user_id, source.value)
    return transaction


async def spend_medals(
    store: LedgerStore,
    user_id: str,
    amount: int,
    item_id: int,
    description: str | None = None,
) -> MedalTransaction:
    """Debit medals for a purchase. Rejected if it would overdraw the balance."""
    if amount <= 0:
        raise InvalidAmount("Spend amount must be positive")

    balance = await store.current_balance(user_id)
    if balance is None:
        raise MissingActor(user_id)
    if balance < amount:
        raise InsufficientBalance(balance, amount)

    # The store re-applies the balance floor atomically.
    return await store.append_transaction(
        user_id,
        -amount,
        MedalSource.PURCHASE,
        item_id,
        description or f"Spent {amount} Medals",
    )


async def try_award_medals(
    store: LedgerStore,
    user_id: str,
    amount: int,
    source: MedalSource,
    source_id: int | None = None,
    description: str | None = None,
) -> MedalTransaction | None:
    """award_medals for batch callers: a missing character yields None."""
    try:
        return await award_medals(store, user_id, amount, source, source_id, description)
    except MissingActor:
        logger.warning("Skipped %d %s medals for %s: no active character", amount, source.value, user_id)
        return None


async def get_medal_balance(store: LedgerStore, user_id: str) -> int:
    """Current balance, 0 when the user has no alive character."""
    return await store.current_balance(user_id) or 0


async def get_medal_history(store: LedgerStore, user_id: str, limit: int = 50) -> list[MedalTransaction]:
    """Most recent transactions first."""
    return await store.transactions(user_id, limit)
