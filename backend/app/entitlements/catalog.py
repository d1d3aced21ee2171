"""Static catalog definitions for plans."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from ..exceptions import PlanConfigurationError
from .models import BillingInterval, FeatureBundle, PlanKey


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a plan, its price and the features it unlocks."""

    key: PlanKey
    display_name: str
    price_minor_units: int
    billing_interval: BillingInterval
    bundle: FeatureBundle
    features: Tuple[str, ...] = ()
    listed: bool = True
    popular: bool = False

    @property
    def grants_watermark_removal(self) -> bool:
        return self.bundle.watermark_removal

    @property
    def is_recurring(self) -> bool:
        return self.billing_interval in {BillingInterval.MONTHLY, BillingInterval.YEARLY}


FREE_BUNDLE = FeatureBundle()

PAID_BUNDLE = FeatureBundle(watermark_removal=True)

PERIOD_LENGTHS: Dict[BillingInterval, timedelta] = {
    BillingInterval.MONTHLY: timedelta(days=30),
    BillingInterval.YEARLY: timedelta(days=365),
}

PLAN_CATALOG: Dict[PlanKey, PlanDefinition] = {
    PlanKey.FREE: PlanDefinition(
        key=PlanKey.FREE,
        display_name="Free",
        price_minor_units=0,
        billing_interval=BillingInterval.NONE,
        bundle=FREE_BUNDLE,
        features=(
            "Unlimited invoices",
            "Watermark on every PDF",
        ),
    ),
    PlanKey.SINGLE: PlanDefinition(
        key=PlanKey.SINGLE,
        display_name="Single invoice",
        price_minor_units=199,
        billing_interval=BillingInterval.ONE_TIME,
        bundle=PAID_BUNDLE,
        features=(
            "One invoice without watermark",
            "Instant download",
        ),
        listed=False,
    ),
    PlanKey.MONTHLY: PlanDefinition(
        key=PlanKey.MONTHLY,
        display_name="Monthly",
        price_minor_units=999,
        billing_interval=BillingInterval.MONTHLY,
        bundle=PAID_BUNDLE,
        features=(
            "Unlimited invoices without watermark",
            "Pro badge on your account",
            "Cancel anytime",
        ),
    ),
    PlanKey.YEARLY: PlanDefinition(
        key=PlanKey.YEARLY,
        display_name="Yearly",
        price_minor_units=9999,
        billing_interval=BillingInterval.YEARLY,
        bundle=PAID_BUNDLE,
        features=(
            "Unlimited invoices without watermark",
            "Pro badge on your account",
            "Cancel anytime",
        ),
        popular=True,
    ),
}


def parse_plan_key(value: object) -> PlanKey:
    """Resolve a raw plan identifier, raising a configuration error if unknown."""

    if isinstance(value, PlanKey):
        return value
    try:
        return PlanKey(str(value))
    except ValueError as exc:
        raise PlanConfigurationError(
            f"Unknown plan id: {value!r}",
            detail={"plan": str(value)},
        ) from exc


def get_plan_definition(plan: object) -> PlanDefinition:
    """Return a plan definition, raising if unsupported."""

    plan_key = parse_plan_key(plan)
    try:
        return PLAN_CATALOG[plan_key]
    except KeyError as exc:
        raise PlanConfigurationError(
            f"Plan {plan_key.value!r} is missing from the catalog",
            detail={"plan": plan_key.value},
        ) from exc


def listed_plans() -> Tuple[PlanDefinition, ...]:
    """Plans shown on the pricing page, in catalog order."""

    return tuple(definition for definition in PLAN_CATALOG.values() if definition.listed)


def period_end_for(plan: PlanKey, start: datetime) -> Optional[datetime]:
    """End of the first paid period for a recurring plan started at ``start``.

    Only called when a period is written; stored ends are never recomputed.
    """

    definition = get_plan_definition(plan)
    length = PERIOD_LENGTHS.get(definition.billing_interval)
    if length is None:
        return None
    return start + length


__all__ = [
    "PERIOD_LENGTHS",
    "PLAN_CATALOG",
    "PlanDefinition",
    "get_plan_definition",
    "listed_plans",
    "parse_plan_key",
    "period_end_for",
]
