"""Shop purchases paid in medals."""

from __future__ import annotations

import logging

from esko.exceptions import ItemNotForSale, ItemNotFound
from esko.rewards.medal_service import get_medal_balance, spend_medals
from esko.rewards.schemas import PurchaseResult
from esko.stores.base import RewardStore

logger = logging.getLogger(__name__)


async def purchase_item(store: RewardStore, user_id: str, item_id: int) -> PurchaseResult:
    """Buy a priced catalog item: spend, add to inventory and record the unlock together."""
    item = await store.item_by_id(item_id)
    if item is None:
        raise ItemNotFound(item_id)
    if not item.price:
        raise ItemNotForSale(item_id)

    async with store.transaction():
        transaction = await spend_medals(store, user_id, item.price, item.id, f"Purchased {item.name}")
        await store.add_to_inventory(user_id, item.id)
        await store.record_unlock(user_id, item.id)

    new_balance = await get_medal_balance(store, user_id)
    logger.info("Purchase by %s: %s for %d medals", user_id, item.name, item.price)
    return PurchaseResult(item=item, transaction=transaction, new_balance=new_balance)
