"""Watermark entitlement policy.

Every capability check in the application goes through these functions. They
take the user's current subscription (``None`` meaning the free tier) and a
single ``now`` fetched once by the caller, and they never raise: a missing
record, an unknown status or an untrustworthy period end all resolve to the
less privileged answer.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from .catalog import PLAN_CATALOG
from .models import (
    ENTITLED_STATUSES,
    EntitlementDecision,
    FeatureBundle,
    PlanKey,
    Subscription,
    coerce_timestamp,
)


def _trusted_period_end(subscription: Subscription) -> Optional[datetime]:
    end = coerce_timestamp(subscription.current_period_end)
    if end is None:
        return None
    start = coerce_timestamp(subscription.current_period_start)
    if start is not None and start >= end:
        return None
    return end


def _within_period(subscription: Subscription, now: object) -> bool:
    instant = coerce_timestamp(now)
    end = _trusted_period_end(subscription)
    if instant is None or end is None:
        return False
    return instant <= end


def _is_paid(subscription: Subscription) -> bool:
    return subscription.plan != PlanKey.FREE and subscription.plan in PLAN_CATALOG


def is_active(subscription: Optional[Subscription], now: datetime) -> bool:
    """Whether the record is in an access-granting status and its period has not ended."""

    if subscription is None:
        return False
    if subscription.status not in ENTITLED_STATUSES:
        return False
    return _within_period(subscription, now)


def grants_watermark_removal(subscription: Optional[Subscription], now: datetime) -> bool:
    if subscription is None:
        return False
    return _is_paid(subscription) and is_active(subscription, now)


def display_as_pro(subscription: Optional[Subscription], now: datetime) -> bool:
    """Pro badge: entitled, or a paid plan cancelled but still inside its period."""

    if subscription is None:
        return False
    if grants_watermark_removal(subscription, now):
        return True
    return (
        bool(subscription.cancel_at_period_end)
        and _is_paid(subscription)
        and _within_period(subscription, now)
    )


def evaluate(subscription: Optional[Subscription], now: Optional[datetime] = None) -> EntitlementDecision:
    """Evaluate every capability against one instant."""

    instant = coerce_timestamp(now) or datetime.now(timezone.utc)
    suppress = grants_watermark_removal(subscription, instant)
    if suppress and subscription is not None:
        plan = subscription.plan
        bundle = PLAN_CATALOG[plan].bundle
    else:
        plan = PlanKey.FREE
        bundle = FeatureBundle()

    return EntitlementDecision(
        plan=plan,
        is_active=is_active(subscription, instant),
        suppress_watermark=suppress,
        display_as_pro=display_as_pro(subscription, instant),
        cancel_at_period_end=bool(subscription.cancel_at_period_end) if subscription else False,
        subscription_id=subscription.id if subscription else None,
        expires_at=_trusted_period_end(subscription) if subscription else None,
        evaluated_at=instant,
        feature_flags=bundle.to_flags(),
    )


__all__ = ["display_as_pro", "evaluate", "grants_watermark_removal", "is_active"]
