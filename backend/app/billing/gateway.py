"""Stripe implementation of the payment gateway."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import stripe

from ..entitlements.catalog import PlanDefinition
from ..entitlements.models import PlanKey, coerce_timestamp
from ..exceptions import GatewayError, PlanConfigurationError, WebhookVerificationError
from .config import BillingConfig
from .models import WebhookEvent, WebhookEventType

logger = logging.getLogger(__name__)

_STRIPE_EVENT_TYPES: Dict[str, WebhookEventType] = {
    "customer.subscription.created": WebhookEventType.SUBSCRIPTION_CREATED,
    "customer.subscription.updated": WebhookEventType.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": WebhookEventType.SUBSCRIPTION_DELETED,
    "invoice.payment_succeeded": WebhookEventType.INVOICE_PAYMENT_SUCCEEDED,
    "invoice.paid": WebhookEventType.INVOICE_PAYMENT_SUCCEEDED,
    "invoice.payment_failed": WebhookEventType.INVOICE_PAYMENT_FAILED,
}


def _field(obj: Any, key: str, default: Any = None) -> Any:
    """Read ``key`` from a Stripe object or a plain mapping."""

    if obj is None:
        return default
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def _first_item(obj: Any) -> Any:
    items = _field(_field(obj, "items"), "data") or _field(_field(obj, "lines"), "data") or []
    return items[0] if items else None


class StripePaymentGateway:
    """Payment gateway talking to the Stripe API."""

    def __init__(self, config: BillingConfig) -> None:
        self._config = config
        self._api_key = config.stripe_secret_key

    def _price_id(self, plan: PlanDefinition) -> str:
        price_id = self._config.price_ids.get(plan.key)
        if not price_id:
            logger.error("No Stripe price configured for plan %s", plan.key.value)
            raise PlanConfigurationError(
                f"No gateway price configured for plan {plan.key.value!r}",
                detail={"plan": plan.key.value},
            )
        return price_id

    def plan_for_price(self, price_id: str) -> PlanKey:
        for plan, configured in self._config.price_ids.items():
            if configured == price_id:
                return plan
        raise PlanConfigurationError(
            f"Gateway price {price_id!r} does not map to a plan",
            detail={"price_id": price_id},
        )

    def create_checkout_session(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        customer_email: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, object]:
        metadata = {"user_id": user_id, "plan": plan.key.value}
        params: Dict[str, Any] = {
            "mode": "subscription" if plan.is_recurring else "payment",
            "line_items": [{"price": self._price_id(plan), "quantity": 1}],
            "metadata": metadata,
            "client_reference_id": user_id,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if plan.is_recurring:
            params["subscription_data"] = {"metadata": metadata}
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(api_key=self._api_key, **params)
        except stripe.StripeError as exc:
            raise self._gateway_error("checkout.Session.create", exc) from exc

        logger.info("Created checkout session %s for user %s", _field(session, "id"), user_id)
        return {
            "id": _field(session, "id"),
            "url": _field(session, "url", ""),
            "expires_at": _field(session, "expires_at"),
        }

    def create_subscription(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        email: str,
        name: Optional[str],
    ) -> Dict[str, object]:
        price_id = self._price_id(plan)
        try:
            existing = stripe.Customer.list(email=email, limit=1, api_key=self._api_key)
            customers = _field(existing, "data") or []
            if customers:
                customer = customers[0]
            else:
                customer = stripe.Customer.create(
                    email=email,
                    name=name,
                    metadata={"user_id": user_id},
                    api_key=self._api_key,
                )
            subscription = stripe.Subscription.create(
                customer=_field(customer, "id"),
                items=[{"price": price_id}],
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=["latest_invoice.payment_intent"],
                metadata={"user_id": user_id, "plan": plan.key.value},
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            raise self._gateway_error("Subscription.create", exc) from exc

        payment_intent = _field(_field(subscription, "latest_invoice"), "payment_intent")
        client_secret = _field(payment_intent, "client_secret")
        if not client_secret:
            raise GatewayError(
                "Gateway subscription has no payment to confirm",
                detail={"gateway_subscription_id": _field(subscription, "id")},
            )
        return {
            "gateway_subscription_id": _field(subscription, "id"),
            "client_secret": client_secret,
            "customer_id": _field(customer, "id"),
        }

    def create_payment_intent(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        email: Optional[str],
    ) -> Dict[str, object]:
        params: Dict[str, Any] = {
            "amount": plan.price_minor_units,
            "currency": self._config.currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": {"user_id": user_id, "plan": plan.key.value},
        }
        if email:
            params["receipt_email"] = email
        try:
            intent = stripe.PaymentIntent.create(api_key=self._api_key, **params)
        except stripe.StripeError as exc:
            raise self._gateway_error("PaymentIntent.create", exc) from exc
        return {
            "id": _field(intent, "id"),
            "client_secret": _field(intent, "client_secret"),
            "amount": _field(intent, "amount", plan.price_minor_units),
            "currency": _field(intent, "currency", self._config.currency),
        }

    def cancel_at_period_end(self, gateway_subscription_id: str) -> Dict[str, object]:
        try:
            subscription = stripe.Subscription.modify(
                gateway_subscription_id,
                cancel_at_period_end=True,
                api_key=self._api_key,
            )
        except stripe.StripeError as exc:
            raise self._gateway_error("Subscription.modify", exc) from exc
        return {
            "status": _field(subscription, "status", ""),
            "cancel_at_period_end": bool(_field(subscription, "cancel_at_period_end", False)),
            "current_period_end": self._period_bound(subscription, "current_period_end"),
        }

    def retrieve_payment(self, reference: str) -> Dict[str, object]:
        """Resolve a checkout session, subscription or payment intent id to its payment state."""

        try:
            if reference.startswith("cs_"):
                session = stripe.checkout.Session.retrieve(reference, api_key=self._api_key)
                metadata = _field(session, "metadata") or {}
                target = _field(session, "subscription") or _field(session, "payment_intent") or reference
                if not isinstance(target, str):
                    target = _field(target, "id", reference)
                result: Dict[str, object] = {
                    "paid": _field(session, "payment_status") == "paid",
                    "plan": _field(metadata, "plan"),
                    "user_id": _field(metadata, "user_id") or _field(session, "client_reference_id"),
                    "reference": target,
                }
                if str(target).startswith("sub_"):
                    subscription = stripe.Subscription.retrieve(target, api_key=self._api_key)
                    result["current_period_start"] = self._period_bound(subscription, "current_period_start")
                    result["current_period_end"] = self._period_bound(subscription, "current_period_end")
                return result

            if reference.startswith("pi_"):
                intent = stripe.PaymentIntent.retrieve(reference, api_key=self._api_key)
                metadata = _field(intent, "metadata") or {}
                return {
                    "paid": _field(intent, "status") == "succeeded",
                    "plan": _field(metadata, "plan"),
                    "user_id": _field(metadata, "user_id"),
                    "reference": reference,
                }

            subscription = stripe.Subscription.retrieve(reference, api_key=self._api_key)
        except stripe.StripeError as exc:
            raise self._gateway_error("retrieve_payment", exc) from exc

        metadata = _field(subscription, "metadata") or {}
        plan = _field(metadata, "plan")
        if not plan:
            price_id = _field(_field(_first_item(subscription), "price"), "id")
            plan = self.plan_for_price(price_id).value if price_id else None
        return {
            "paid": _field(subscription, "status") in {"active", "trialing"},
            "plan": plan,
            "user_id": _field(metadata, "user_id"),
            "reference": reference,
            "current_period_start": self._period_bound(subscription, "current_period_start"),
            "current_period_end": self._period_bound(subscription, "current_period_end"),
        }

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Optional[WebhookEvent]:
        """Verify and normalize a webhook delivery; ``None`` for event types the lifecycle ignores."""

        secret = self._config.stripe_webhook_secret
        if not secret:
            raise WebhookVerificationError("Webhook secret is not configured")
        if not signature:
            raise WebhookVerificationError("Missing webhook signature")
        try:
            event = stripe.Webhook.construct_event(payload, signature, secret)
        except ValueError as exc:
            raise WebhookVerificationError("Malformed webhook payload") from exc
        except stripe.SignatureVerificationError as exc:
            logger.warning("Webhook signature verification failed: %s", exc)
            raise WebhookVerificationError("Invalid webhook signature") from exc

        stripe_type = str(_field(event, "type", ""))
        event_type = _STRIPE_EVENT_TYPES.get(stripe_type)
        if event_type is None:
            logger.debug("Ignoring unhandled Stripe event type %s", stripe_type)
            return None

        obj = _field(_field(event, "data"), "object")
        if stripe_type.startswith("invoice."):
            gateway_subscription_id = self._invoice_subscription_id(obj)
            payload_fields = self._invoice_payload(obj)
        else:
            gateway_subscription_id = _field(obj, "id")
            payload_fields = self._subscription_payload(obj)

        fields: Dict[str, Any] = {
            "event_id": str(_field(event, "id")),
            "event_type": event_type,
            "gateway_subscription_id": gateway_subscription_id,
            "payload": payload_fields,
        }
        created = coerce_timestamp(_field(event, "created"))
        if created is not None:
            fields["received_at"] = created
        return WebhookEvent(**fields)

    def _subscription_payload(self, obj: Any) -> Dict[str, object]:
        metadata = _field(obj, "metadata") or {}
        payload: Dict[str, object] = {
            "status": _field(obj, "status", ""),
            "cancel_at_period_end": bool(_field(obj, "cancel_at_period_end", False)),
            "current_period_start": self._period_bound(obj, "current_period_start"),
            "current_period_end": self._period_bound(obj, "current_period_end"),
            "user_id": _field(metadata, "user_id"),
            "plan": _field(metadata, "plan"),
        }
        if not payload["plan"]:
            price_id = _field(_field(_first_item(obj), "price"), "id")
            if price_id:
                payload["plan"] = self.plan_for_price(price_id).value
        return payload

    @staticmethod
    def _invoice_subscription_id(obj: Any) -> Optional[str]:
        subscription = _field(obj, "subscription")
        if subscription is None:
            details = _field(_field(obj, "parent"), "subscription_details")
            subscription = _field(details, "subscription")
        if subscription is not None and not isinstance(subscription, str):
            subscription = _field(subscription, "id")
        return subscription

    @staticmethod
    def _invoice_payload(obj: Any) -> Dict[str, object]:
        period = _field(_first_item(obj), "period")
        return {
            "invoice_id": _field(obj, "id"),
            "amount_due": _field(obj, "amount_due", 0),
            "currency": _field(obj, "currency", "eur"),
            "current_period_start": coerce_timestamp(_field(period, "start")),
            "current_period_end": coerce_timestamp(_field(period, "end")),
        }

    @staticmethod
    def _period_bound(obj: Any, key: str):
        value = _field(obj, key)
        if value is None:
            value = _field(_first_item(obj), key)
        return coerce_timestamp(value)

    @staticmethod
    def _gateway_error(operation: str, exc: Exception) -> GatewayError:
        logger.warning("Stripe %s failed: %s", operation, exc)
        return GatewayError(
            "Payment gateway request failed",
            detail={"operation": operation, "gateway_message": getattr(exc, "user_message", None) or str(exc)},
        )


__all__ = ["StripePaymentGateway"]
