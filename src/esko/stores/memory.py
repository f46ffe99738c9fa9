"""In-process RewardStore for tests and local tooling.

Every operation runs without awaiting, so each one is atomic on the event
loop. transaction() serializes units of work with an asyncio.Lock taken at
the outermost scope and restores a snapshot of the tables if a scope fails.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date, datetime, timezone

from esko.exceptions import InsufficientBalance, MissingActor
from esko.rewards.schemas import (
    CatalogItem,
    CharacterProgress,
    CharacterStatus,
    CheckIn,
    InventoryEntry,
    MedalSource,
    MedalTransaction,
    Rarity,
    Referral,
    RunEvent,
    UnlockRecord,
)

_TABLES = (
    "users",
    "characters",
    "items",
    "unlocks",
    "inventory_entries",
    "ledger",
    "check_ins",
    "referrals",
    "runs",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryRewardStore:
    def __init__(self, items: list[CatalogItem] | None = None) -> None:
        self._lock = asyncio.Lock()
        self._depth: ContextVar[int] = ContextVar(f"memory_store_depth_{id(self)}", default=0)
        self._ids = itertools.count(1)

        self.users: dict[str, dict[str, str | None]] = {}
        self.characters: list[CharacterProgress] = []
        self.items: dict[int, CatalogItem] = {item.id: item for item in items or []}
        self.unlocks: dict[tuple[str, int], UnlockRecord] = {}
        self.inventory_entries: list[InventoryEntry] = []
        self.ledger: list[MedalTransaction] = []
        self.check_ins: dict[tuple[str, date], CheckIn] = {}
        self.referrals: dict[str, Referral] = {}
        self.runs: dict[int, RunEvent] = {}

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        depth = self._depth.get()
        if depth == 0:
            await self._lock.acquire()
        token = self._depth.set(depth + 1)
        snapshot = {name: copy.copy(getattr(self, name)) for name in _TABLES}
        try:
            yield
        except BaseException:
            for name, table in snapshot.items():
                setattr(self, name, table)
            raise
        finally:
            self._depth.reset(token)
            if depth == 0:
                self._lock.release()

    def _next_id(self) -> int:
        return next(self._ids)

    def _alive_index(self, user_id: str) -> int | None:
        for index, character in enumerate(self.characters):
            if character.user_id == user_id and character.status == CharacterStatus.ALIVE:
                return index
        return None

    def _update_alive(self, user_id: str, **changes: object) -> CharacterProgress:
        index = self._alive_index(user_id)
        if index is None:
            raise MissingActor(user_id)
        updated = self.characters[index].model_copy(update=changes)
        self.characters[index] = updated
        return updated

    # --- Provisioning ---

    async def create_user(self, user_id: str, friend_code: str | None = None, timezone: str = "UTC") -> None:
        self.users[user_id] = {"friend_code": friend_code, "timezone": timezone}

    async def create_character(self, user_id: str, name: str) -> CharacterProgress:
        if self._alive_index(user_id) is not None:
            raise ValueError(f"User {user_id} already has an alive character")
        character = CharacterProgress(id=self._next_id(), user_id=user_id, name=name)
        self.characters.append(character)
        return character

    async def set_character_status(self, user_id: str, status: CharacterStatus) -> None:
        self._update_alive(user_id, status=status)

    # --- Catalog ---

    async def items_by_rarity(self, rarity: Rarity, exclude_special: bool = True) -> list[CatalogItem]:
        return [
            item
            for item in sorted(self.items.values(), key=lambda i: i.id)
            if item.rarity == rarity and not (exclude_special and item.is_special_reward)
        ]

    async def special_items(self) -> list[CatalogItem]:
        return [item for item in sorted(self.items.values(), key=lambda i: i.id) if item.is_special_reward]

    async def item_by_id(self, item_id: int) -> CatalogItem | None:
        return self.items.get(item_id)

    async def upsert_item(self, item: CatalogItem) -> CatalogItem:
        self.items[item.id] = item
        return item

    # --- Unlocks and inventory ---

    async def has_unlocked(self, user_id: str, item_id: int) -> bool:
        return (user_id, item_id) in self.unlocks

    async def unlocked_item_ids(self, user_id: str) -> set[int]:
        return {item_id for owner, item_id in self.unlocks if owner == user_id}

    async def record_unlock(self, user_id: str, item_id: int) -> bool:
        if (user_id, item_id) in self.unlocks:
            return False
        self.unlocks[(user_id, item_id)] = UnlockRecord(user_id=user_id, item_id=item_id, unlocked_at=_now())
        return True

    async def add_to_inventory(self, user_id: str, item_id: int, run_id: int | None = None) -> InventoryEntry:
        entry = InventoryEntry(
            id=self._next_id(), user_id=user_id, item_id=item_id, run_id=run_id, acquired_at=_now()
        )
        self.inventory_entries.append(entry)
        return entry

    async def inventory(self, user_id: str) -> list[InventoryEntry]:
        return [entry for entry in self.inventory_entries if entry.user_id == user_id]

    # --- Medal ledger ---

    async def current_balance(self, user_id: str) -> int | None:
        index = self._alive_index(user_id)
        return self.characters[index].medal_balance if index is not None else None

    async def append_transaction(
        self,
        user_id: str,
        amount: int,
        source: MedalSource,
        source_id: int | None,
        description: str,
    ) -> MedalTransaction:
        balance = await self.current_balance(user_id)
        if balance is None:
            raise MissingActor(user_id)
        if balance + amount < 0:
            raise InsufficientBalance(balance, -amount)

        self._update_alive(user_id, medal_balance=balance + amount)
        transaction = MedalTransaction(
            id=self._next_id(),
            user_id=user_id,
            amount=amount,
            source=source,
            source_id=source_id,
            description=description,
            created_at=_now(),
        )
        self.ledger.append(transaction)
        return transaction

    async def transactions(self, user_id: str, limit: int = 50) -> list[MedalTransaction]:
        return [t for t in reversed(self.ledger) if t.user_id == user_id][:limit]

    async def ledger_total(self, user_id: str) -> int:
        return sum(t.amount for t in self.ledger if t.user_id == user_id)

    # --- Check-ins ---

    async def check_ins_since(self, user_id: str, since: date) -> list[CheckIn]:
        rows = [c for (owner, day), c in self.check_ins.items() if owner == user_id and day >= since]
        return sorted(rows, key=lambda c: c.check_in_date, reverse=True)

    async def insert_check_in(
        self,
        user_id: str,
        check_in_date: date,
        medals_awarded: int,
        streak_day: int,
    ) -> CheckIn | None:
        key = (user_id, check_in_date)
        if key in self.check_ins:
            return None
        check_in = CheckIn(
            id=self._next_id(),
            user_id=user_id,
            check_in_date=check_in_date,
            medals_awarded=medals_awarded,
            streak_day=streak_day,
            created_at=_now(),
        )
        self.check_ins[key] = check_in
        return check_in

    # --- Referrals ---

    async def referral_for(self, referred_user_id: str, for_update: bool = False) -> Referral | None:
        return self.referrals.get(referred_user_id)

    async def referrals_by(self, referrer_id: str) -> list[Referral]:
        return sorted((r for r in self.referrals.values() if r.referrer_id == referrer_id), key=lambda r: r.id)

    async def user_by_friend_code(self, friend_code: str) -> str | None:
        for user_id, profile in self.users.items():
            if profile["friend_code"] == friend_code:
                return user_id
        return None

    async def create_referral(self, referrer_id: str, referred_user_id: str) -> Referral | None:
        if referred_user_id in self.referrals:
            return None
        referral = Referral(
            id=self._next_id(),
            referrer_id=referrer_id,
            referred_user_id=referred_user_id,
            created_at=_now(),
        )
        self.referrals[referred_user_id] = referral
        return referral

    async def increment_referral_medals(self, referral_id: int, new_total: int) -> None:
        for referred_user_id, referral in self.referrals.items():
            if referral.id == referral_id:
                self.referrals[referred_user_id] = referral.model_copy(
                    update={"medals_earned_from_referral": new_total}
                )
                return

    # --- Characters and runs ---

    async def active_character(self, user_id: str) -> CharacterProgress | None:
        index = self._alive_index(user_id)
        return self.characters[index] if index is not None else None

    async def insert_run(self, user_id: str, run: RunEvent) -> RunEvent | None:
        if run.external_id is not None and any(
            stored.external_id == run.external_id for stored in self.runs.values()
        ):
            return None
        stored = run.model_copy(update={"id": self._next_id()})
        self.runs[stored.id] = stored
        return stored

    async def increment_run_totals(self, user_id: str, runs: int, distance_meters: int) -> tuple[int, int]:
        character = await self.active_character(user_id)
        if character is None:
            raise MissingActor(user_id)
        updated = self._update_alive(
            user_id,
            total_runs=character.total_runs + runs,
            total_distance=character.total_distance + distance_meters,
        )
        return character.total_runs, updated.total_runs

    async def update_stage(self, user_id: str, stage: str) -> None:
        if self._alive_index(user_id) is not None:
            self._update_alive(user_id, stage=stage)
