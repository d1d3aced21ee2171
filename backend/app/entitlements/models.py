"""Domain models for plans and entitlement decisions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


class PlanKey(str, Enum):
    """Canonical identifiers for purchasable plans."""

    FREE = "free"
    SINGLE = "single"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class BillingInterval(str, Enum):
    """Billing frequency attached to a plan."""

    NONE = "none"
    ONE_TIME = "one_time"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    """Lifecycle state for subscriptions."""

    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"
    PAST_DUE = "past_due"


# Statuses that still grant access while the paid period runs.
ENTITLED_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE})


@dataclass(frozen=True)
class FeatureBundle:
    """Feature flags a plan unlocks."""

    watermark_removal: bool = False

    def to_flags(self) -> Dict[str, bool]:
        """Serialize bundle to flattened flag keys."""

        return {
            "watermark.removal": self.watermark_removal,
        }


def coerce_timestamp(value: object) -> Optional[datetime]:
    """Parse a stored timestamp, returning ``None`` when it cannot be trusted."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


class Subscription(BaseModel):
    """A user's subscription row as held by the subscription store."""

    id: str
    user_id: str
    plan: PlanKey
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    gateway_subscription_id: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    @field_validator("current_period_start", "current_period_end", mode="before")
    @classmethod
    def _lenient_period(cls, value: object) -> Optional[datetime]:
        parsed = coerce_timestamp(value)
        if parsed is None and value not in (None, ""):
            logger.warning("Discarding unparseable subscription period value %r", value)
        return parsed

    @property
    def is_paid_plan(self) -> bool:
        return self.plan != PlanKey.FREE


class EntitlementDecision(BaseModel):
    """Outcome of evaluating the entitlement policy at a single instant."""

    plan: PlanKey
    is_active: bool
    suppress_watermark: bool
    display_as_pro: bool
    cancel_at_period_end: bool = False
    subscription_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    evaluated_at: datetime
    feature_flags: Dict[str, bool]

    model_config = ConfigDict(frozen=True)
