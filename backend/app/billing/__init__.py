"""Billing domain package: subscription lifecycle, store and payment gateway."""

from ..entitlements.models import Subscription, SubscriptionStatus
from ..exceptions import (
    BillingError,
    GatewayError,
    InvalidTransitionError,
    MissingGatewaySubscriptionError,
    PlanConfigurationError,
    StoreReconciliationError,
    SubscriptionNotFoundError,
    WebhookVerificationError,
)
from .config import BillingConfig, load_billing_config
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    CheckoutSession,
    GatewayCancellation,
    PaymentFailure,
    SinglePurchaseGrant,
    SinglePurchaseIntent,
    SubscriptionIntent,
    SweepReport,
    WebhookEvent,
    WebhookEventType,
    WebhookOutcome,
)
from .service import (
    BillingEventLogger,
    BillingNotifier,
    PaymentGateway,
    SubscriptionLifecycleService,
    SubscriptionStore,
)

__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingConfig",
    "BillingError",
    "BillingEventLogger",
    "BillingNotifier",
    "CheckoutSession",
    "GatewayCancellation",
    "GatewayError",
    "InvalidTransitionError",
    "MissingGatewaySubscriptionError",
    "PaymentFailure",
    "PaymentGateway",
    "PlanConfigurationError",
    "SinglePurchaseGrant",
    "SinglePurchaseIntent",
    "StoreReconciliationError",
    "Subscription",
    "SubscriptionIntent",
    "SubscriptionLifecycleService",
    "SubscriptionNotFoundError",
    "SubscriptionStatus",
    "SubscriptionStore",
    "SweepReport",
    "WebhookEvent",
    "WebhookEventType",
    "WebhookOutcome",
    "WebhookVerificationError",
    "load_billing_config",
]
