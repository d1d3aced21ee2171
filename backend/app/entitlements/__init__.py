"""Plan catalog, entitlement policy and the services built on them."""

from .catalog import (
    PLAN_CATALOG,
    PlanDefinition,
    get_plan_definition,
    listed_plans,
    parse_plan_key,
    period_end_for,
)
from .models import (
    ENTITLED_STATUSES,
    BillingInterval,
    EntitlementDecision,
    FeatureBundle,
    PlanKey,
    Subscription,
    SubscriptionStatus,
)
from .policy import display_as_pro, evaluate, grants_watermark_removal, is_active
from .service import EntitlementService, SubscriptionLookup

__all__ = [
    "PLAN_CATALOG",
    "PlanDefinition",
    "get_plan_definition",
    "listed_plans",
    "parse_plan_key",
    "period_end_for",
    "ENTITLED_STATUSES",
    "BillingInterval",
    "EntitlementDecision",
    "FeatureBundle",
    "PlanKey",
    "Subscription",
    "SubscriptionStatus",
    "display_as_pro",
    "evaluate",
    "grants_watermark_removal",
    "is_active",
    "EntitlementService",
    "SubscriptionLookup",
]
