"""
models.py — SubTrack records

Shapes of everything that crosses the store boundary: subscriptions, lists,
price changes, the user's notification list and reminder preferences.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, Field, field_validator


class BillingCycle(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class SubscriptionStatus(str, Enum):
    active = "active"
    trial = "trial"
    paused = "paused"
    cancelled = "cancelled"


class Category(str, Enum):
    entertainment = "entertainment"
    productivity = "productivity"
    utilities = "utilities"
    health = "health"
    education = "education"
    gaming = "gaming"
    news = "news"
    social = "social"
    finance = "finance"
    other = "other"


class NotificationType(str, Enum):
    payment = "payment"
    trial = "trial"


class PriceChangeType(str, Enum):
    increase = "increase"
    decrease = "decrease"
    switch = "switch"


# ── Entities ──────────────────────────────────────────────────────────────────
class Subscription(BaseModel):
    id: str
    name: str
    price: float = Field(default=0.0, ge=0)
    billing_cycle: BillingCycle = BillingCycle.monthly
    next_billing_date: date
    category: Category = Category.other
    status: SubscriptionStatus = SubscriptionStatus.active
    is_free_trial: bool = False
    trial_end_date: Optional[date] = None
    color: str = ""
    icon_url: str = ""
    reminder_days_before: Optional[int] = None  # per-item override, not used by the evaluator
    notes: str = ""
    list_id: Optional[str] = None

    @property
    def is_billable(self) -> bool:
        return self.status in (SubscriptionStatus.active, SubscriptionStatus.trial)


class SubscriptionList(BaseModel):
    id: str
    name: str
    color: str = ""


class PriceChange(BaseModel):
    id: str
    subscription_id: str
    old_price: float
    new_price: float
    change_date: date
    change_type: PriceChangeType = PriceChangeType.increase
    notes: str = ""
    from_service: str = ""


# ── Notifications ─────────────────────────────────────────────────────────────
class NotificationKey(NamedTuple):
    """One reminder per (subscription, days-before-billing) pair, ever."""

    subscription_id: str
    day_offset: int

    def __str__(self) -> str:
        return f"{self.subscription_id}-{self.day_offset}"


class Notification(BaseModel):
    id: str
    subscription_id: str
    type: NotificationType = NotificationType.payment
    title: str
    message: str
    created_at: datetime
    read: bool = False
    day_offset: Optional[int] = None

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def key(self) -> Optional[NotificationKey]:
        if self.day_offset is None:
            return None
        return NotificationKey(self.subscription_id, self.day_offset)


class NotificationPreferences(BaseModel):
    enabled: bool = True
    email_enabled: bool = True
    in_app_enabled: bool = True
    reminder_days: list[int] = Field(default_factory=lambda: [3, 1])

    @field_validator("reminder_days")
    @classmethod
    def _dedupe(cls, value: list[int]) -> list[int]:
        return list(dict.fromkeys(value))


# ── Request bodies ────────────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    password: str


class SubscriptionIn(BaseModel):
    name: str
    price: float = Field(ge=0)
    billing_cycle: BillingCycle = BillingCycle.monthly
    next_billing_date: date
    category: Optional[Category] = None
    status: SubscriptionStatus = SubscriptionStatus.active
    is_free_trial: bool = False
    trial_end_date: Optional[date] = None
    color: str = "#22c55e"
    icon_url: str = ""
    reminder_days_before: Optional[int] = 3
    notes: str = ""
    list_id: Optional[str] = None


class SubscriptionPatch(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    billing_cycle: Optional[BillingCycle] = None
    next_billing_date: Optional[date] = None
    category: Optional[Category] = None
    status: Optional[SubscriptionStatus] = None
    is_free_trial: Optional[bool] = None
    trial_end_date: Optional[date] = None
    color: Optional[str] = None
    icon_url: Optional[str] = None
    reminder_days_before: Optional[int] = None
    notes: Optional[str] = None
    list_id: Optional[str] = None


class ListIn(BaseModel):
    name: str
    color: str = "#06b6d4"


class PriceChangeIn(BaseModel):
    old_price: float
    new_price: float
    change_date: date = Field(default_factory=date.today)
    change_type: PriceChangeType = PriceChangeType.increase
    notes: str = ""
    from_service: str = ""


class PreferencesPatch(BaseModel):
    enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None
    reminder_days: Optional[list[int]] = None
