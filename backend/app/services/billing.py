"""Application wiring for the subscription lifecycle and entitlement services."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..billing import (
    BillingAuditEvent,
    BillingConfig,
    BillingEventLogger,
    BillingNotifier,
    GatewayError,
    PaymentFailure,
    PaymentGateway,
    Subscription,
    SubscriptionLifecycleService,
    WebhookEvent,
    WebhookEventType,
    WebhookVerificationError,
    load_billing_config,
)
from ..billing.gateway import StripePaymentGateway
from ..billing.repository import PostgresSubscriptionStore
from ..entitlements import EntitlementService
from ..entitlements.catalog import PlanDefinition

logger = logging.getLogger("billing")

SANDBOX_PREFIX = "sub_test_"


class LoggingBillingNotifier(BillingNotifier):
    """Notifier that records billing notifications to the application logger."""

    def notify_payment_failure(self, failure: PaymentFailure) -> None:
        logger.warning(
            "Payment failure for subscription %s invoice=%s amount=%s %s",
            failure.subscription_id,
            failure.invoice_id,
            failure.amount_due,
            failure.currency,
        )

    def notify_subscription_expired(self, subscription: Subscription) -> None:
        logger.info(
            "Subscription %s expired for user %s plan=%s",
            subscription.id,
            subscription.user_id,
            subscription.plan.value,
        )


class LoggingBillingEventLogger(BillingEventLogger):
    """Simple event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s subscription=%s actor=%s metadata=%s",
            event.event_type.value,
            event.subscription_id,
            event.actor_id,
            event.metadata,
            extra={"billing_event": event.event_type.value},
        )


class SandboxWebhookPayload(BaseModel):
    """Unsigned webhook body accepted by the sandbox gateway."""

    id: str
    type: WebhookEventType
    gateway_subscription_id: Optional[str] = Field(alias="gatewaySubscriptionId", default=None)
    payload: Dict[str, object] = Field(default_factory=dict)
    received_at: Optional[datetime] = Field(alias="receivedAt", default=None)

    model_config = ConfigDict(populate_by_name=True)


class LocalSandboxPaymentGateway(PaymentGateway):
    """Gateway used for local development when no Stripe key is configured.

    Subscriptions it creates carry ``sub_test_`` ids; anything else is treated
    as a live subscription it cannot touch.
    """

    def __init__(self, config: Optional[BillingConfig] = None) -> None:
        self._config = config or load_billing_config({})
        self._payments: Dict[str, Dict[str, object]] = {}

    def create_checkout_session(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        customer_email: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, object]:
        session_id = f"cs_test_{uuid4().hex}"
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=30)
        reference = f"{SANDBOX_PREFIX}{uuid4().hex}" if plan.is_recurring else f"pi_test_{uuid4().hex}"
        self._payments[session_id] = {
            "paid": True,
            "plan": plan.key.value,
            "user_id": user_id,
            "reference": reference,
        }
        url = f"{self._config.frontend_url}/billing/sandbox-checkout/{session_id}?plan={plan.key.value}"
        return {"id": session_id, "url": url, "expires_at": expires_at}

    def create_subscription(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        email: str,
        name: Optional[str],
    ) -> Dict[str, object]:
        subscription_id = f"{SANDBOX_PREFIX}{uuid4().hex}"
        self._payments[subscription_id] = {
            "paid": True,
            "plan": plan.key.value,
            "user_id": user_id,
            "reference": subscription_id,
        }
        return {
            "gateway_subscription_id": subscription_id,
            "client_secret": f"{subscription_id}_secret_{uuid4().hex[:12]}",
            "customer_id": f"cus_test_{uuid4().hex[:14]}",
        }

    def create_payment_intent(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        email: Optional[str],
    ) -> Dict[str, object]:
        intent_id = f"pi_test_{uuid4().hex}"
        self._payments[intent_id] = {
            "paid": True,
            "plan": plan.key.value,
            "user_id": user_id,
            "reference": intent_id,
        }
        return {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret_{uuid4().hex[:12]}",
            "amount": plan.price_minor_units,
            "currency": self._config.currency,
        }

    def cancel_at_period_end(self, gateway_subscription_id: str) -> Dict[str, object]:
        if not gateway_subscription_id.startswith(SANDBOX_PREFIX):
            raise GatewayError(
                "Sandbox gateway cannot cancel live subscriptions",
                detail={"gateway_subscription_id": gateway_subscription_id},
            )
        logger.info("Sandbox cancellation for %s", gateway_subscription_id)
        return {"status": "active", "cancel_at_period_end": True, "current_period_end": None}

    def retrieve_payment(self, reference: str) -> Dict[str, object]:
        payment = self._payments.get(reference)
        if payment is None:
            raise GatewayError("Unknown sandbox payment", detail={"gateway_reference": reference})
        return dict(payment)

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Optional[WebhookEvent]:
        try:
            body = SandboxWebhookPayload.model_validate(json.loads(payload or b"{}"))
        except (ValueError, ValidationError) as exc:
            raise WebhookVerificationError("Malformed webhook payload") from exc

        fields: Dict[str, object] = {
            "event_id": body.id,
            "event_type": body.type,
            "gateway_subscription_id": body.gateway_subscription_id,
            "payload": body.payload,
        }
        if body.received_at is not None:
            fields["received_at"] = body.received_at
        return WebhookEvent(**fields)


GatewayImplementation = Union[StripePaymentGateway, LocalSandboxPaymentGateway]


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    return load_billing_config()


@lru_cache(maxsize=1)
def get_subscription_store() -> PostgresSubscriptionStore:
    return PostgresSubscriptionStore()


@lru_cache(maxsize=1)
def get_payment_gateway() -> GatewayImplementation:
    config = get_billing_config()
    if config.uses_sandbox:
        logger.warning("STRIPE_SECRET_KEY not set; using the local sandbox payment gateway")
        return LocalSandboxPaymentGateway(config)
    return StripePaymentGateway(config)


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    return EntitlementService(get_subscription_store())


@lru_cache(maxsize=1)
def get_lifecycle_service() -> SubscriptionLifecycleService:
    return SubscriptionLifecycleService(
        store=get_subscription_store(),
        gateway=get_payment_gateway(),
        notifier=LoggingBillingNotifier(),
        event_logger=LoggingBillingEventLogger(),
    )


__all__ = [
    "LocalSandboxPaymentGateway",
    "LoggingBillingEventLogger",
    "LoggingBillingNotifier",
    "get_billing_config",
    "get_entitlement_service",
    "get_lifecycle_service",
    "get_payment_gateway",
    "get_subscription_store",
]
