"""Domain models for the billing system."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..entitlements.models import PlanKey, coerce_timestamp


class WebhookEventType(str, Enum):
    """Gateway webhook event types that the lifecycle reacts to."""

    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_DELETED = "subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class WebhookOutcome(str, Enum):
    """How a webhook delivery affected local state."""

    APPLIED = "applied"
    NO_OP = "no_op"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


class WebhookEvent(BaseModel):
    """Normalized webhook payload stored for idempotency tracking."""

    event_id: str
    event_type: WebhookEventType
    gateway_subscription_id: Optional[str] = None
    payload: Dict[str, object] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutSession(BaseModel):
    """Return value of a hosted checkout session creation request."""

    session_id: str
    session_url: str
    plan: PlanKey
    user_id: str
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SubscriptionIntent(BaseModel):
    """Incomplete gateway subscription awaiting confirmation of its first payment."""

    gateway_subscription_id: str
    client_secret: str
    customer_id: Optional[str] = None
    plan: PlanKey

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SinglePurchaseIntent(BaseModel):
    """One-shot payment for the ``single`` plan."""

    payment_intent_id: str
    client_secret: str
    amount_minor_units: int = Field(ge=0)
    currency: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        return value.lower()


class GatewayCancellation(BaseModel):
    """Gateway acknowledgement of a cancel-at-period-end request."""

    gateway_subscription_id: str
    status: str
    cancel_at_period_end: bool
    current_period_end: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("current_period_end", mode="before")
    @classmethod
    def _parse_period_end(cls, value: object) -> Optional[datetime]:
        return coerce_timestamp(value)


class SinglePurchaseGrant(BaseModel):
    """Entitlement to render exactly one watermark-free document.

    Consumed immediately by the caller and never stored as a subscription.
    """

    grant_id: str
    user_id: str
    payment_reference: str
    plan: PlanKey = PlanKey.SINGLE
    granted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def suppress_watermark(self) -> bool:
        return True


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    CANCELLATION_REQUESTED = "cancellation_requested"
    SUBSCRIPTION_CANCELED = "subscription_canceled"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_RECOVERED = "payment_recovered"
    SINGLE_PURCHASE_GRANTED = "single_purchase_granted"


class BillingAuditEvent(BaseModel):
    """Structured audit event for analytics and notifications."""

    event_type: BillingAuditEventType
    subscription_id: Optional[str] = None
    actor_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PaymentFailure(BaseModel):
    """A failed renewal charge that moved a subscription to ``past_due``."""

    subscription_id: str
    user_id: str
    gateway_subscription_id: Optional[str] = None
    invoice_id: Optional[str] = None
    amount_due: int = 0
    currency: str = "eur"
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SweepReport(BaseModel):
    """Outcome of one expiry sweep."""

    ran_at: datetime
    candidates: int = 0
    expired: int = 0
    skipped: int = 0

    model_config = ConfigDict(frozen=True)
