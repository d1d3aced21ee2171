"""API routes exposing plans, subscriptions and invoice render options."""
from __future__ import annotations

import logging
import os
from typing import Any, Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Request, status

from backend import app_context

from ..billing import BillingError, SinglePurchaseGrant
from ..entitlements import listed_plans
from ..schemas.billing import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    CompleteCheckoutRequest,
    CompleteCheckoutResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    EntitlementResponse,
    PlanListResponse,
    PlanResponse,
    RenderOptionsRequest,
    RenderOptionsResponse,
    SinglePurchaseRequest,
    SinglePurchaseResponse,
    SubscriptionResponse,
    SubscriptionStatusResponse,
    SweepResponse,
    WebhookResponse,
)
from ..services.billing import (
    get_billing_config,
    get_entitlement_service,
    get_lifecycle_service,
    get_payment_gateway,
)

logger = logging.getLogger(__name__)

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_user(session_token=session_token)


router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.get("/plans", response_model=PlanListResponse)
def list_plans() -> PlanListResponse:
    currency = get_billing_config().currency
    return PlanListResponse(
        plans=[PlanResponse.from_definition(plan, currency=currency) for plan in listed_plans()]
    )


@router.post("/checkout-session", response_model=CheckoutSessionResponse)
def create_checkout_session(
    payload: CheckoutSessionRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CheckoutSessionResponse:
    config = get_billing_config()
    service = get_lifecycle_service()
    try:
        session = service.create_checkout_session(
            user_id=str(current_user.id),
            plan=payload.plan,
            success_url=payload.success_url or config.default_success_url,
            cancel_url=payload.cancel_url or config.default_cancel_url,
            customer_email=payload.email or getattr(current_user, "email", None),
        )
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return CheckoutSessionResponse.from_checkout(session)


@router.post("/subscriptions", response_model=CreateSubscriptionResponse)
def create_subscription(
    payload: CreateSubscriptionRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CreateSubscriptionResponse:
    service = get_lifecycle_service()
    try:
        intent = service.start_subscription(
            user_id=str(current_user.id),
            plan=payload.plan,
            email=payload.email,
            name=payload.name,
        )
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return CreateSubscriptionResponse.from_intent(intent)


@router.post("/single-purchase", response_model=SinglePurchaseResponse)
def create_single_purchase(
    payload: SinglePurchaseRequest,
    *,
    current_user=Depends(_get_current_user),
) -> SinglePurchaseResponse:
    service = get_lifecycle_service()
    try:
        intent = service.start_single_purchase(
            user_id=str(current_user.id),
            email=payload.email or getattr(current_user, "email", None),
        )
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return SinglePurchaseResponse.from_intent(intent)


@router.post("/checkout/complete", response_model=CompleteCheckoutResponse)
def complete_checkout(
    payload: CompleteCheckoutRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CompleteCheckoutResponse:
    service = get_lifecycle_service()
    try:
        result = service.confirm_checkout(
            user_id=str(current_user.id),
            gateway_reference=payload.gateway_reference,
        )
    except BillingError as exc:
        raise exc.to_http_exception() from exc

    if isinstance(result, SinglePurchaseGrant):
        return CompleteCheckoutResponse.from_grant(result)
    decision = get_entitlement_service().evaluate(str(current_user.id))
    return CompleteCheckoutResponse(
        subscription=SubscriptionResponse.from_subscription(result),
        suppress_watermark=decision.suppress_watermark,
    )


@router.post("/subscription/cancel", response_model=SubscriptionResponse)
def cancel_subscription(*, current_user=Depends(_get_current_user)) -> SubscriptionResponse:
    service = get_lifecycle_service()
    try:
        subscription = service.request_cancellation(str(current_user.id))
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionResponse.from_subscription(subscription)


@router.get("/subscription", response_model=SubscriptionStatusResponse)
def get_subscription_status(*, current_user=Depends(_get_current_user)) -> SubscriptionStatusResponse:
    entitlements = get_entitlement_service()
    user_id = str(current_user.id)
    try:
        decision = entitlements.evaluate(user_id)
        subscription = entitlements.current_subscription(user_id)
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionStatusResponse(
        subscription=SubscriptionResponse.from_subscription(subscription) if subscription else None,
        entitlement=EntitlementResponse.from_decision(decision),
    )


@router.post("/render-options", response_model=RenderOptionsResponse)
def get_render_options(
    payload: RenderOptionsRequest,
    *,
    current_user=Depends(_get_current_user),
) -> RenderOptionsResponse:
    """Whether the next invoice render may omit the watermark."""

    user_id = str(current_user.id)
    try:
        decision = get_entitlement_service().evaluate(user_id)
        if payload.single_purchase_reference and not decision.suppress_watermark:
            grant = get_lifecycle_service().confirm_checkout(
                user_id=user_id,
                gateway_reference=payload.single_purchase_reference,
            )
            if isinstance(grant, SinglePurchaseGrant):
                return RenderOptionsResponse(
                    suppress_watermark=grant.suppress_watermark,
                    display_as_pro=False,
                    plan=grant.plan,
                    single_purchase=True,
                )
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return RenderOptionsResponse(
        suppress_watermark=decision.suppress_watermark,
        display_as_pro=decision.display_as_pro,
        plan=decision.plan,
    )


async def _raw_body(request: Request) -> bytes:
    return await request.body()


@router.post("/webhook", response_model=WebhookResponse)
def receive_webhook(
    body: bytes = Depends(_raw_body),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> WebhookResponse:
    gateway = get_payment_gateway()
    try:
        event = gateway.parse_webhook(body, stripe_signature)
        if event is None:
            return WebhookResponse(outcome="ignored")
        outcome = get_lifecycle_service().handle_webhook(event)
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    logger.info("Webhook %s (%s) -> %s", event.event_id, event.event_type.value, outcome.value)
    return WebhookResponse(outcome=outcome.value)


@router.post("/expiry-sweep", response_model=SweepResponse)
def run_expiry_sweep(*, current_user=Depends(_get_current_user)) -> SweepResponse:
    if getattr(current_user, "role", None) != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    report = get_lifecycle_service().sweep_expired()
    return SweepResponse.from_report(report)
