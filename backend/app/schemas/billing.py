"""API schemas for billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import (
    CheckoutSession,
    SinglePurchaseGrant,
    SinglePurchaseIntent,
    SubscriptionIntent,
    SweepReport,
)
from ..entitlements import EntitlementDecision, PlanDefinition, PlanKey, Subscription


class PlanResponse(BaseModel):
    id: PlanKey
    name: str
    price: int
    currency: str
    interval: str
    features: List[str] = Field(default_factory=list)
    popular: bool = False

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_definition(cls, definition: PlanDefinition, *, currency: str) -> "PlanResponse":
        return cls(
            id=definition.key,
            name=definition.display_name,
            price=definition.price_minor_units,
            currency=currency,
            interval=definition.billing_interval.value,
            features=list(definition.features),
            popular=definition.popular,
        )


class PlanListResponse(BaseModel):
    plans: List[PlanResponse]


class CheckoutSessionRequest(BaseModel):
    plan: PlanKey
    success_url: Optional[str] = Field(alias="successUrl", default=None)
    cancel_url: Optional[str] = Field(alias="cancelUrl", default=None)
    email: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    session_id: str = Field(alias="sessionId")
    url: str
    plan: PlanKey
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, session: CheckoutSession) -> "CheckoutSessionResponse":
        return cls(
            session_id=session.session_id,
            url=session.session_url,
            plan=session.plan,
            expires_at=session.expires_at,
        )


class CreateSubscriptionRequest(BaseModel):
    plan: PlanKey
    email: str
    name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class CreateSubscriptionResponse(BaseModel):
    subscription_id: str = Field(alias="subscriptionId")
    client_secret: str = Field(alias="clientSecret")
    customer_id: Optional[str] = Field(alias="customerId", default=None)
    plan: PlanKey

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_intent(cls, intent: SubscriptionIntent) -> "CreateSubscriptionResponse":
        return cls(
            subscription_id=intent.gateway_subscription_id,
            client_secret=intent.client_secret,
            customer_id=intent.customer_id,
            plan=intent.plan,
        )


class SinglePurchaseRequest(BaseModel):
    email: Optional[str] = None


class SinglePurchaseResponse(BaseModel):
    payment_intent_id: str = Field(alias="paymentIntentId")
    client_secret: str = Field(alias="clientSecret")
    amount: int
    currency: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_intent(cls, intent: SinglePurchaseIntent) -> "SinglePurchaseResponse":
        return cls(
            payment_intent_id=intent.payment_intent_id,
            client_secret=intent.client_secret,
            amount=intent.amount_minor_units,
            currency=intent.currency,
        )


class CompleteCheckoutRequest(BaseModel):
    gateway_reference: str = Field(alias="gatewayReference", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionResponse(BaseModel):
    id: str
    plan: PlanKey
    status: str
    current_period_start: Optional[datetime] = Field(alias="currentPeriodStart", default=None)
    current_period_end: Optional[datetime] = Field(alias="currentPeriodEnd", default=None)
    cancel_at_period_end: bool = Field(alias="cancelAtPeriodEnd", default=False)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionResponse":
        return cls(
            id=subscription.id,
            plan=subscription.plan,
            status=subscription.status.value,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
        )


class EntitlementResponse(BaseModel):
    plan: PlanKey
    is_active: bool = Field(alias="isActive")
    suppress_watermark: bool = Field(alias="suppressWatermark")
    display_as_pro: bool = Field(alias="displayAsPro")
    cancel_at_period_end: bool = Field(alias="cancelAtPeriodEnd", default=False)
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)
    feature_flags: dict = Field(alias="featureFlags", default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_decision(cls, decision: EntitlementDecision) -> "EntitlementResponse":
        return cls(
            plan=decision.plan,
            is_active=decision.is_active,
            suppress_watermark=decision.suppress_watermark,
            display_as_pro=decision.display_as_pro,
            cancel_at_period_end=decision.cancel_at_period_end,
            expires_at=decision.expires_at,
            feature_flags=dict(decision.feature_flags),
        )


class SubscriptionStatusResponse(BaseModel):
    subscription: Optional[SubscriptionResponse] = None
    entitlement: EntitlementResponse


class CompleteCheckoutResponse(BaseModel):
    subscription: Optional[SubscriptionResponse] = None
    single_purchase_grant_id: Optional[str] = Field(alias="singlePurchaseGrantId", default=None)
    suppress_watermark: bool = Field(alias="suppressWatermark")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_grant(cls, grant: SinglePurchaseGrant) -> "CompleteCheckoutResponse":
        return cls(single_purchase_grant_id=grant.grant_id, suppress_watermark=grant.suppress_watermark)


class RenderOptionsRequest(BaseModel):
    single_purchase_reference: Optional[str] = Field(alias="singlePurchaseReference", default=None)

    model_config = ConfigDict(populate_by_name=True)


class RenderOptionsResponse(BaseModel):
    suppress_watermark: bool = Field(alias="suppressWatermark")
    display_as_pro: bool = Field(alias="displayAsPro")
    plan: PlanKey
    single_purchase: bool = Field(alias="singlePurchase", default=False)

    model_config = ConfigDict(populate_by_name=True)


class WebhookResponse(BaseModel):
    received: bool = True
    outcome: str


class SweepResponse(BaseModel):
    ran_at: datetime = Field(alias="ranAt")
    candidates: int
    expired: int
    skipped: int

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_report(cls, report: SweepReport) -> "SweepResponse":
        return cls(
            ran_at=report.ran_at,
            candidates=report.candidates,
            expired=report.expired,
            skipped=report.skipped,
        )
