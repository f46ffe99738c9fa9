"""Plain data records exchanged between the reward engine and its stores."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator


class Rarity(str, Enum):
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"
    MYTHIC = "mythic"

    @property
    def rank(self) -> int:
        """Position in the value ordering, common = 0."""
        return RARITY_ORDER.index(self)


RARITY_ORDER: list[Rarity] = list(Rarity)


class SpecialCondition(str, Enum):
    """Predicates gating one-time special rewards."""

    HOT = "hot"  # temp > 100F
    COLD = "cold"  # temp < 10F
    SNOWING = "snowing"
    RAINING = "raining"
    BEFORE_6AM = "before_6am"
    AFTER_10PM = "after_10pm"
    FEB_14 = "feb_14"
    OVER_100KM = "over_100km"
    PURCHASE = "purchase"  # shop-only, never matched by a run


class MedalSource(str, Enum):
    ITEM_DROP = "item_drop"
    CHECK_IN = "check_in"
    PROGRESSION = "progression"
    REFERRAL = "referral"
    PURCHASE = "purchase"


class CharacterStatus(str, Enum):
    ALIVE = "alive"
    DEAD = "dead"
    ARCHIVED = "archived"


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)


# --- Reference data ---


class CatalogItem(_Record):
    id: int
    name: str
    rarity: Rarity
    is_special_reward: bool = False
    special_condition: SpecialCondition | None = None
    price: PositiveInt | None = None
    image_url: str = ""


# --- Events ---


class WeatherConditions(_Record):
    is_hot: bool = False
    is_cold: bool = False
    is_snowing: bool = False
    is_raining: bool = False


class RunEvent(_Record):
    """A run from sync or manual entry. Immutable once recorded."""

    id: int | None = None
    external_id: str | None = None
    distance_meters: float = Field(ge=0)
    occurred_at: datetime
    timezone: str = "UTC"
    polyline: str | None = None
    weather: WeatherConditions | None = None

    @field_validator("occurred_at")
    @classmethod
    def _require_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("occurred_at must be timezone-aware")
        return value

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    def local_time(self) -> datetime:
        """The run start in the runner's own timezone."""
        return self.occurred_at.astimezone(ZoneInfo(self.timezone))


# --- Ledgers ---


class UnlockRecord(_Record):
    user_id: str
    item_id: int
    unlocked_at: datetime


class InventoryEntry(_Record):
    id: int
    user_id: str
    item_id: int
    run_id: int | None = None
    equipped: bool = False
    acquired_at: datetime


class MedalTransaction(_Record):
    id: int
    user_id: str
    amount: int
    source: MedalSource
    source_id: int | None = None
    description: str
    created_at: datetime


class CheckIn(_Record):
    id: int
    user_id: str
    check_in_date: date
    medals_awarded: int
    streak_day: int
    created_at: datetime


class Referral(_Record):
    id: int
    referrer_id: str
    referred_user_id: str
    medals_earned_from_referral: int = 0
    created_at: datetime


class CharacterProgress(_Record):
    id: int
    user_id: str
    name: str
    status: CharacterStatus = CharacterStatus.ALIVE
    total_runs: int = 0
    total_distance: int = 0
    medal_balance: int = 0
    stage: str = "egg"


# --- Results ---


class RunRewardResult(BaseModel):
    items: list[CatalogItem] = []
    rarities: list[Rarity] = []
    special_items: list[CatalogItem] = []
    medals_awarded: int = 0


class ProgressionReward(BaseModel):
    from_stage: str
    to_stage: str
    transition_key: str
    medals_awarded: int


class SyncResult(BaseModel):
    synced: int = 0
    skipped: int = 0
    awarded_items: list[CatalogItem] = []
    medals_awarded: int = 0
    progression: ProgressionReward | None = None
    referral_medals: int = 0
    previous_total_runs: int = 0
    new_total_runs: int = 0


class CheckInStatus(BaseModel):
    can_check_in: bool
    current_streak: int
    days_until_bonus: int
    last_check_in: date | None = None
    today_check_in: CheckIn | None = None


class CheckInResult(BaseModel):
    medals_awarded: int
    current_streak: int
    is_streak_bonus: bool
    check_in: CheckIn


class ReferralClaim(BaseModel):
    referral: Referral
    welcome_bonus: int
    signup_bonus_paid: bool


class ReferralStats(BaseModel):
    total_referrals: int
    total_medals_earned: int
    referred_by: str | None = None
    referred_at: datetime | None = None


class PurchaseResult(BaseModel):
    item: CatalogItem
    transaction: MedalTransaction
    new_balance: int
