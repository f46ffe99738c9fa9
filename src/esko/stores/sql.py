"""PostgreSQL-backed RewardStore on an async SQLAlchemy session.

Duplicate-sensitive inserts use INSERT ... ON CONFLICT DO NOTHING RETURNING,
so a lost race shows up as an empty result rather than an IntegrityError.
Balance moves are a single conditional UPDATE ... RETURNING executed in the
same transaction as the ledger insert.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date

from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from esko.db import models
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
    WeatherConditions,
)

logger = logging.getLogger(__name__)


def _run_event(row: models.Run) -> RunEvent:
    return RunEvent(
        id=row.id,
        external_id=row.external_id,
        distance_meters=row.distance_meters,
        occurred_at=row.occurred_at,
        timezone=row.timezone,
        polyline=row.polyline,
        weather=WeatherConditions(**row.weather) if row.weather else None,
    )


class SqlRewardStore:
    """RewardStore over one AsyncSession. Not shared between tasks."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._depth = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Outermost scope commits or rolls back; inner scopes are SAVEPOINTs."""
        if self._depth > 0:
            self._depth += 1
            try:
                async with self.session.begin_nested():
                    yield
            finally:
                self._depth -= 1
            return

        self._depth = 1
        try:
            yield
        except BaseException:
            await self.session.rollback()
            raise
        else:
            await self.session.commit()
        finally:
            self._depth = 0

    def _alive(self, user_id: str):
        return (models.Character.user_id == user_id) & (
            models.Character.status == CharacterStatus.ALIVE.value
        )

    # --- Catalog ---

    async def items_by_rarity(self, rarity: Rarity, exclude_special: bool = True) -> list[CatalogItem]:
        stmt = select(models.Item).where(models.Item.rarity == rarity.value)
        if exclude_special:
            stmt = stmt.where(models.Item.is_special_reward.is_(False))
        result = await self.session.execute(stmt.order_by(models.Item.id))
        return [CatalogItem.model_validate(row) for row in result.scalars()]

    async def special_items(self) -> list[CatalogItem]:
        result = await self.session.execute(
            select(models.Item).where(models.Item.is_special_reward.is_(True)).order_by(models.Item.id)
        )
        return [CatalogItem.model_validate(row) for row in result.scalars()]

    async def item_by_id(self, item_id: int) -> CatalogItem | None:
        row = await self.session.get(models.Item, item_id)
        return CatalogItem.model_validate(row) if row is not None else None

    async def upsert_item(self, item: CatalogItem) -> CatalogItem:
        values = item.model_dump(mode="json")
        stmt = pg_insert(models.Item).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={key: value for key, value in values.items() if key != "id"},
        ).returning(models.Item)
        result = await self.session.execute(stmt)
        return CatalogItem.model_validate(result.scalar_one())

    # --- Unlocks and inventory ---

    async def has_unlocked(self, user_id: str, item_id: int) -> bool:
        result = await self.session.execute(
            select(models.UserUnlock.id).where(
                models.UserUnlock.user_id == user_id,
                models.UserUnlock.item_id == item_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def unlocked_item_ids(self, user_id: str) -> set[int]:
        result = await self.session.execute(
            select(models.UserUnlock.item_id).where(models.UserUnlock.user_id == user_id)
        )
        return set(result.scalars())

    async def record_unlock(self, user_id: str, item_id: int) -> bool:
        stmt = (
            pg_insert(models.UserUnlock)
            .values(user_id=user_id, item_id=item_id)
            .on_conflict_do_nothing(index_elements=["user_id", "item_id"])
            .returning(models.UserUnlock.id)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def add_to_inventory(self, user_id: str, item_id: int, run_id: int | None = None) -> InventoryEntry:
        stmt = (
            insert(models.InventoryItem)
            .values(user_id=user_id, item_id=item_id, run_id=run_id)
            .returning(models.InventoryItem)
        )
        result = await self.session.execute(stmt)
        return InventoryEntry.model_validate(result.scalar_one())

    async def inventory(self, user_id: str) -> list[InventoryEntry]:
        result = await self.session.execute(
            select(models.InventoryItem)
            .where(models.InventoryItem.user_id == user_id)
            .order_by(models.InventoryItem.id)
        )
        return [InventoryEntry.model_validate(row) for row in result.scalars()]

    # --- Medal ledger ---

    async def current_balance(self, user_id: str) -> int | None:
        result = await self.session.execute(
            select(models.Character.medal_balance).where(self._alive(user_id))
        )
        return result.scalar_one_or_none()

    async def append_transaction(
        self,
        user_id: str,
        amount: int,
        source: MedalSource,
        source_id: int | None,
        description: str,
    ) -> MedalTransaction:
        stmt = update(models.Character).where(self._alive(user_id))
        if amount < 0:
            stmt = stmt.where(models.Character.medal_balance >= -amount)
        stmt = stmt.values(medal_balance=models.Character.medal_balance + amount).returning(
            models.Character.medal_balance
        )
        new_balance = (await self.session.execute(stmt)).scalar_one_or_none()
        if new_balance is None:
            balance = await self.current_balance(user_id)
            if balance is None:
                raise MissingActor(user_id)
            raise InsufficientBalance(balance, -amount)

        result = await self.session.execute(
            insert(models.MedalLedger)
            .values(
                user_id=user_id,
                amount=amount,
                source=source.value,
                source_id=source_id,
                description=description,
            )
            .returning(models.MedalLedger)
        )
        return MedalTransaction.model_validate(result.scalar_one())

    async def transactions(self, user_id: str, limit: int = 50) -> list[MedalTransaction]:
        result = await self.session.execute(
            select(models.MedalLedger)
            .where(models.MedalLedger.user_id == user_id)
            .order_by(models.MedalLedger.created_at.desc(), models.MedalLedger.id.desc())
            .limit(limit)
        )
        return [MedalTransaction.model_validate(row) for row in result.scalars()]

    async def ledger_total(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.sum(models.MedalLedger.amount), 0)).where(
                models.MedalLedger.user_id == user_id
            )
        )
        return int(result.scalar_one())

    # --- Check-ins ---

    async def check_ins_since(self, user_id: str, since: date) -> list[CheckIn]:
        result = await self.session.execute(
            select(models.DailyCheckIn)
            .where(
                models.DailyCheckIn.user_id == user_id,
                models.DailyCheckIn.check_in_date >= since,
            )
            .order_by(models.DailyCheckIn.check_in_date.desc())
        )
        return [CheckIn.model_validate(row) for row in result.scalars()]

    async def insert_check_in(
        self,
        user_id: str,
        check_in_date: date,
        medals_awarded: int,
        streak_day: int,
    ) -> CheckIn | None:
        stmt = (
            pg_insert(models.DailyCheckIn)
            .values(
                user_id=user_id,
                check_in_date=check_in_date,
                medals_awarded=medals_awarded,
                streak_day=streak_day,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "check_in_date"])
            .returning(models.DailyCheckIn)
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return CheckIn.model_validate(row) if row is not None else None

    # --- Referrals ---

    async def referral_for(self, referred_user_id: str, for_update: bool = False) -> Referral | None:
        stmt = select(models.Referral).where(models.Referral.referred_user_id == referred_user_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return Referral.model_validate(row) if row is not None else None

    async def referrals_by(self, referrer_id: str) -> list[Referral]:
        result = await self.session.execute(
            select(models.Referral)
            .where(models.Referral.referrer_id == referrer_id)
            .order_by(models.Referral.id)
        )
        return [Referral.model_validate(row) for row in result.scalars()]

    async def user_by_friend_code(self, friend_code: str) -> str | None:
        result = await self.session.execute(
            select(models.User.id).where(models.User.friend_code == friend_code)
        )
        return result.scalar_one_or_none()

    async def create_referral(self, referrer_id: str, referred_user_id: str) -> Referral | None:
        stmt = (
            pg_insert(models.Referral)
            .values(referrer_id=referrer_id, referred_user_id=referred_user_id)
            .on_conflict_do_nothing(index_elements=["referred_user_id"])
            .returning(models.Referral)
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return Referral.model_validate(row) if row is not None else None

    async def increment_referral_medals(self, referral_id: int, new_total: int) -> None:
        await self.session.execute(
            update(models.Referral)
            .where(models.Referral.id == referral_id)
            .values(medals_earned_from_referral=new_total)
        )

    # --- Characters and runs ---

    async def active_character(self, user_id: str) -> CharacterProgress | None:
        row = (
            await self.session.execute(select(models.Character).where(self._alive(user_id)))
        ).scalar_one_or_none()
        return CharacterProgress.model_validate(row) if row is not None else None

    async def insert_run(self, user_id: str, run: RunEvent) -> RunEvent | None:
        stmt = (
            pg_insert(models.Run)
            .values(
                user_id=user_id,
                external_id=run.external_id,
                distance_meters=run.distance_meters,
                occurred_at=run.occurred_at,
                timezone=run.timezone,
                polyline=run.polyline,
                weather=run.weather.model_dump() if run.weather else None,
            )
            .on_conflict_do_nothing(index_elements=["external_id"])
            .returning(models.Run)
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return _run_event(row) if row is not None else None

    async def increment_run_totals(self, user_id: str, runs: int, distance_meters: int) -> tuple[int, int]:
        stmt = (
            update(models.Character)
            .where(self._alive(user_id))
            .values(
                total_runs=models.Character.total_runs + runs,
                total_distance=models.Character.total_distance + distance_meters,
            )
            .returning(models.Character.total_runs)
        )
        after = (await self.session.execute(stmt)).scalar_one_or_none()
        if after is None:
            raise MissingActor(user_id)
        return after - runs, after

    async def update_stage(self, user_id: str, stage: str) -> None:
        await self.session.execute(
            update(models.Character).where(self._alive(user_id)).values(stage=stage)
        )

    # --- Provisioning ---

    async def create_user(self, user_id: str, friend_code: str | None = None, timezone: str = "UTC") -> None:
        self.session.add(models.User(id=user_id, friend_code=friend_code, timezone=timezone))
        await self.session.flush()

    async def create_character(self, user_id: str, name: str) -> CharacterProgress:
        result = await self.session.execute(
            insert(models.Character).values(user_id=user_id, name=name).returning(models.Character)
        )
        character = CharacterProgress.model_validate(result.scalar_one())
        logger.info("Character %s created for %s", name, user_id)
        return character

    async def set_character_status(self, user_id: str, status: CharacterStatus) -> None:
        await self.session.execute(
            update(models.Character).where(self._alive(user_id)).values(status=status.value)
        )
