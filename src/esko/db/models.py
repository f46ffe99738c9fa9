"""ORM models for the reward engine tables.

Uniqueness guarantees the engine relies on live here as constraints:
one unlock per (user, item), one check-in per (user, day), one referral
per referred user, one stored run per external id, and at most one alive
character per user.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from esko.db.base import Base


# ---------------------------------------------------------------------------
# Users and characters
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table. Ids come from the auth provider."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    friend_code: Mapped[str | None] = mapped_column(String(8), unique=True, nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, server_default="UTC")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Character(Base):
    """Running companion. Balance and run totals are denormalized here."""

    __tablename__ = "characters"
    __table_args__ = (
        CheckConstraint("medal_balance >= 0", name="characters_medal_balance_non_negative"),
        Index(
            "characters_one_alive_per_user",
            "user_id",
            unique=True,
            postgresql_where=text("status = 'alive'"),
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="alive")
    medal_balance: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_runs: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_distance: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    stage: Mapped[str] = mapped_column(String(32), nullable=False, server_default="egg")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Catalog and unlocks
# ---------------------------------------------------------------------------


class Item(Base):
    """Catalog item. Seeded with stable ids."""

    __tablename__ = "items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    rarity: Mapped[str] = mapped_column(String(16), nullable=False)
    is_special_reward: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    special_condition: Mapped[str | None] = mapped_column(String(32), nullable=True)
    price: Mapped[int | None] = mapped_column(Integer, nullable=True)
    image_url: Mapped[str] = mapped_column(String(256), nullable=False, server_default="")


class UserUnlock(Base):
    """Items a user has ever obtained. UNIQUE(user_id, item_id) gates specials."""

    __tablename__ = "user_unlocks"
    __table_args__ = (UniqueConstraint("user_id", "item_id", name="user_unlocks_user_item_key"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    item_id: Mapped[int] = mapped_column(Integer, ForeignKey("items.id"), nullable=False)
    unlocked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class InventoryItem(Base):
    __tablename__ = "inventory_items"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    item_id: Mapped[int] = mapped_column(Integer, ForeignKey("items.id"), nullable=False)
    run_id: Mapped[int | None] = mapped_column(BigInteger, ForeignKey("runs.id", ondelete="SET NULL"), nullable=True)
    equipped: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    acquired_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


class Run(Base):
    """Synced or manual run. external_id is the provider activity id."""

    __tablename__ = "runs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(64), unique=True, nullable=True)
    distance_meters: Mapped[float] = mapped_column(Float, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, server_default="UTC")
    polyline: Mapped[str | None] = mapped_column(Text, nullable=True)
    weather: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Ledgers
# ---------------------------------------------------------------------------


class MedalLedger(Base):
    """Append-only medal transaction log. Sum of amounts equals the balance."""

    __tablename__ = "medal_transactions"
    __table_args__ = (Index("medal_transactions_user_created_idx", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    source_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    description: Mapped[str] = mapped_column(String(256), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class DailyCheckIn(Base):
    """One row per user per local calendar day."""

    __tablename__ = "daily_check_ins"
    __table_args__ = (UniqueConstraint("user_id", "check_in_date", name="daily_check_ins_user_date_key"),)

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    medals_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    streak_day: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Referral(Base):
    """Referrer link for a referred user, with the capped payout accumulator."""

    __tablename__ = "referrals"
    __table_args__ = (
        CheckConstraint(
            "medals_earned_from_referral BETWEEN 0 AND 25", name="referrals_medals_within_cap"
        ),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    referrer_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    referred_user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    medals_earned_from_referral: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
