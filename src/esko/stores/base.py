"""Store-agnostic persistence contracts for the reward engine.

Uniqueness (unlocks, check-ins per day, referrals per referred user, runs
per external id) is enforced by the store with insert-or-ignore semantics:
a duplicate insert returns a falsy value instead of raising.
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Protocol

from esko.rewards.schemas import (
    CatalogItem,
    CharacterProgress,
    CheckIn,
    InventoryEntry,
    MedalSource,
    MedalTransaction,
    Rarity,
    Referral,
    RunEvent,
)


class CatalogStore(Protocol):
    async def items_by_rarity(self, rarity: Rarity, exclude_special: bool = True) -> list[CatalogItem]: ...

    async def special_items(self) -> list[CatalogItem]: ...

    async def item_by_id(self, item_id: int) -> CatalogItem | None: ...

    async def upsert_item(self, item: CatalogItem) -> CatalogItem: ...


class UnlockStore(Protocol):
    async def has_unlocked(self, user_id: str, item_id: int) -> bool: ...

    async def unlocked_item_ids(self, user_id: str) -> set[int]: ...

    async def record_unlock(self, user_id: str, item_id: int) -> bool:
        """Insert-or-ignore. True if this call created the unlock."""
        ...

    async def add_to_inventory(self, user_id: str, item_id: int, run_id: int | None = None) -> InventoryEntry: ...

    async def inventory(self, user_id: str) -> list[InventoryEntry]: ...


class LedgerStore(Protocol):
    async def current_balance(self, user_id: str) -> int | None:
        """Balance of the alive character, or None if there is none."""
        ...

    async def append_transaction(
        self,
        user_id: str,
        amount: int,
        source: MedalSource,
        source_id: int | None,
        description: str,
    ) -> MedalTransaction:
        """Insert the transaction and move the balance as one atomic unit.

        Raises MissingActor without an alive character and
        InsufficientBalance if the balance would go negative.
        """
        ...

    async def transactions(self, user_id: str, limit: int = 50) -> list[MedalTransaction]: ...

    async def ledger_total(self, user_id: str) -> int:
        """Sum of every transaction amount for the user."""
        ...


class CheckInStore(Protocol):
    async def check_ins_since(self, user_id: str, since: date) -> list[CheckIn]:
        """Check-ins on or after since, most recent first."""
        ...

    async def insert_check_in(
        self,
        user_id: str,
        check_in_date: date,
        medals_awarded: int,
        streak_day: int,
    ) -> CheckIn | None:
        """Insert-or-ignore on (user_id, check_in_date). None on duplicate."""
        ...


class ReferralStore(Protocol):
    async def referral_for(self, referred_user_id: str, for_update: bool = False) -> Referral | None:
        """The referral of a user. for_update locks it until the transaction ends."""
        ...

    async def referrals_by(self, referrer_id: str) -> list[Referral]: ...

    async def user_by_friend_code(self, friend_code: str) -> str | None: ...

    async def create_referral(self, referrer_id: str, referred_user_id: str) -> Referral | None:
        """Insert-or-ignore on referred_user_id. None if already referred."""
        ...

    async def increment_referral_medals(self, referral_id: int, new_total: int) -> None: ...


class CharacterStore(Protocol):
    async def active_character(self, user_id: str) -> CharacterProgress | None: ...

    async def insert_run(self, user_id: str, run: RunEvent) -> RunEvent | None:
        """Insert-or-ignore on external_id. Returns the stored run with its id."""
        ...

    async def increment_run_totals(self, user_id: str, runs: int, distance_meters: int) -> tuple[int, int]:
        """Atomically add to the alive character's totals. Returns (before, after) run counts."""
        ...

    async def update_stage(self, user_id: str, stage: str) -> None: ...


class RewardStore(CatalogStore, UnlockStore, LedgerStore, CheckInStore, ReferralStore, CharacterStore, Protocol):
    """Everything the engine needs, plus a unit-of-work scope."""

    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Commit on success, roll back every write on error. Nestable."""
        ...
