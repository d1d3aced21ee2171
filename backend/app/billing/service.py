"""Subscription lifecycle coordinating the payment gateway and the subscription store.

States are ``active``, ``canceled``, ``expired`` and ``past_due``. Every
status change is written as a compare-and-set against the status the
transition starts from, so a sweep, a webhook and a user request racing on the
same row cannot resurrect or double-apply a transition.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Collection, Dict, Mapping, Optional, Protocol, Sequence, Union
from uuid import uuid4

from ..entitlements.catalog import PlanDefinition, get_plan_definition, parse_plan_key, period_end_for
from ..entitlements.models import PlanKey, Subscription, SubscriptionStatus, coerce_timestamp
from ..exceptions import (
    BillingError,
    GatewayError,
    InvalidTransitionError,
    MissingGatewaySubscriptionError,
    StoreReconciliationError,
    SubscriptionNotFoundError,
)
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

logger = logging.getLogger("billing")


class PaymentGateway(Protocol):
    """External payment processor integration."""

    def create_checkout_session(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        customer_email: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, object]:
        """Create a hosted checkout session; returns ``id``, ``url`` and ``expires_at``."""

    def create_subscription(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        email: str,
        name: Optional[str],
    ) -> Dict[str, object]:
        """Create an incomplete subscription; returns ``gateway_subscription_id`` and ``client_secret``."""

    def create_payment_intent(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        email: Optional[str],
    ) -> Dict[str, object]:
        """Create a one-shot payment; returns ``id``, ``client_secret``, ``amount`` and ``currency``."""

    def cancel_at_period_end(self, gateway_subscription_id: str) -> Dict[str, object]:
        """Mark the remote subscription to end with its current period."""

    def retrieve_payment(self, reference: str) -> Dict[str, object]:
        """Look up a checkout session, subscription or payment; returns ``paid``, ``plan``, ``user_id`` and ``reference``."""


class SubscriptionStore(Protocol):
    """Persistence operations required by the lifecycle."""

    def insert(self, subscription: Subscription) -> Subscription:
        ...

    def update_by_id(self, subscription_id: str, changes: Mapping[str, object]) -> Optional[Subscription]:
        ...

    def find_latest_by_user(self, user_id: str) -> Optional[Subscription]:
        ...

    def find_by_gateway_subscription_id(self, gateway_subscription_id: str) -> Optional[Subscription]:
        ...

    def find_all_expired_active(self, now: datetime) -> Sequence[Subscription]:
        ...

    def compare_and_set_status(
        self,
        subscription_id: str,
        *,
        expected: Collection[SubscriptionStatus],
        status: SubscriptionStatus,
        changes: Optional[Mapping[str, object]] = None,
        require_cancel_at_period_end: bool = False,
        period_ended_before: Optional[datetime] = None,
    ) -> Optional[Subscription]:
        """Apply ``status`` (and ``changes``) only while the row still matches; ``None`` otherwise."""

    def record_single_purchase(self, grant: SinglePurchaseGrant) -> bool:
        """Store the grant's payment reference; ``False`` when it was already redeemed."""

    def record_webhook_event(self, event: WebhookEvent) -> bool:
        """Store the event id; ``False`` when it was already recorded."""

    def forget_webhook_event(self, event_id: str) -> None:
        ...


class BillingNotifier(Protocol):
    """Dispatches billing related notifications to end users."""

    def notify_payment_failure(self, failure: PaymentFailure) -> None:
        ...

    def notify_subscription_expired(self, subscription: Subscription) -> None:
        ...


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Gateway subscription statuses mapped onto local ones for ``subscription.updated``.
_GATEWAY_STATUS_MAP: Dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.EXPIRED,
}

# Gateway statuses that mean the first payment went through.
_PAID_GATEWAY_STATUSES = frozenset({"active", "trialing"})

# An incomplete subscription becomes paid through a later ``subscription.updated``.
_OPENING_EVENTS = frozenset(
    {WebhookEventType.SUBSCRIPTION_CREATED, WebhookEventType.SUBSCRIPTION_UPDATED}
)

_LIVE_STATUSES = frozenset(
    {SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED}
)


@dataclass(slots=True)
class SubscriptionLifecycleService:
    """Drives subscriptions through checkout, cancellation, expiry and webhook events."""

    store: SubscriptionStore
    gateway: PaymentGateway
    notifier: BillingNotifier
    event_logger: BillingEventLogger
    clock: Callable[[], datetime] = field(default=_utcnow)

    def _now(self) -> datetime:
        return self.clock()

    # Purchases -----------------------------------------------------------

    def create_checkout_session(
        self,
        *,
        user_id: str,
        plan: object,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        definition = self._purchasable_plan(plan)
        session = self._call_gateway(
            "create_checkout_session",
            self.gateway.create_checkout_session,
            plan=definition,
            user_id=user_id,
            customer_email=customer_email,
            success_url=success_url,
            cancel_url=cancel_url,
        )
        return CheckoutSession(
            session_id=str(session.get("id", "")),
            session_url=str(session.get("url", "")),
            plan=definition.key,
            user_id=user_id,
            expires_at=coerce_timestamp(session.get("expires_at")),
        )

    def start_subscription(
        self,
        *,
        user_id: str,
        plan: object,
        email: str,
        name: Optional[str] = None,
    ) -> SubscriptionIntent:
        """Create an incomplete gateway subscription; no local row exists until checkout completes."""

        definition = self._purchasable_plan(plan)
        if not definition.is_recurring:
            raise InvalidTransitionError(
                f"Plan {definition.key.value!r} is not a recurring plan",
                detail={"plan": definition.key.value},
            )
        created = self._call_gateway(
            "create_subscription",
            self.gateway.create_subscription,
            plan=definition,
            user_id=user_id,
            email=email,
            name=name,
        )
        return SubscriptionIntent(
            gateway_subscription_id=str(created["gateway_subscription_id"]),
            client_secret=str(created["client_secret"]),
            customer_id=created.get("customer_id") and str(created["customer_id"]),
            plan=definition.key,
        )

    def start_single_purchase(self, *, user_id: str, email: Optional[str] = None) -> SinglePurchaseIntent:
        definition = get_plan_definition(PlanKey.SINGLE)
        intent = self._call_gateway(
            "create_payment_intent",
            self.gateway.create_payment_intent,
            plan=definition,
            user_id=user_id,
            email=email,
        )
        return SinglePurchaseIntent(
            payment_intent_id=str(intent["id"]),
            client_secret=str(intent["client_secret"]),
            amount_minor_units=int(intent.get("amount", definition.price_minor_units)),
            currency=str(intent.get("currency", "eur")),
        )

    def complete_checkout(
        self,
        *,
        user_id: str,
        plan: object,
        gateway_reference: Optional[str],
        now: Optional[datetime] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
    ) -> Union[Subscription, SinglePurchaseGrant]:
        """Record a payment the gateway confirmed.

        ``single`` purchases return a one-shot grant and never touch the store.
        Recurring plans insert a new active row; completing the same gateway
        subscription twice returns the existing row.
        """

        definition = self._purchasable_plan(plan)
        if not gateway_reference:
            raise MissingGatewaySubscriptionError(
                "Checkout completion requires the gateway reference",
                detail={"plan": definition.key.value},
            )

        current_time = now or self._now()
        if definition.key == PlanKey.SINGLE:
            grant = SinglePurchaseGrant(
                grant_id=f"grant_{uuid4().hex}",
                user_id=user_id,
                payment_reference=gateway_reference,
                granted_at=current_time,
            )
            if not self.store.record_single_purchase(grant):
                raise InvalidTransitionError(
                    "Single purchase has already been redeemed",
                    detail={"payment_reference": gateway_reference},
                )
            self.event_logger.log(
                BillingAuditEvent(
                    event_type=BillingAuditEventType.SINGLE_PURCHASE_GRANTED,
                    actor_id=user_id,
                    metadata={"payment_reference": gateway_reference},
                    occurred_at=current_time,
                )
            )
            return grant

        existing = self.store.find_by_gateway_subscription_id(gateway_reference)
        if existing is not None:
            logger.info(
                "Checkout for gateway subscription %s already recorded as %s",
                gateway_reference,
                existing.id,
            )
            return existing

        start = period_start or current_time
        end = period_end or period_end_for(definition.key, start)
        if end is None or end <= start:
            raise InvalidTransitionError(
                "Checkout completion produced an empty billing period",
                detail={"plan": definition.key.value},
            )

        subscription = Subscription(
            id=f"sub_{uuid4().hex}",
            user_id=user_id,
            plan=definition.key,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=start,
            current_period_end=end,
            cancel_at_period_end=False,
            gateway_subscription_id=gateway_reference,
            created_at=current_time,
            updated_at=current_time,
        )
        persisted = self.store.insert(subscription)
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.SUBSCRIPTION_ACTIVATED,
                subscription_id=persisted.id,
                actor_id=persisted.user_id,
                metadata={"plan": persisted.plan.value},
                occurred_at=current_time,
            )
        )
        return persisted

    def confirm_checkout(self, *, user_id: str, gateway_reference: str) -> Union[Subscription, SinglePurchaseGrant]:
        """Complete a checkout the client reports as paid, after the gateway confirms it."""

        payment = self._call_gateway("retrieve_payment", self.gateway.retrieve_payment, gateway_reference)
        if not payment.get("paid"):
            raise InvalidTransitionError(
                "Payment has not completed",
                detail={"gateway_reference": gateway_reference},
            )
        owner = payment.get("user_id")
        if not owner or str(owner) != user_id:
            logger.warning(
                "User %s tried to complete payment %s owned by %s",
                user_id,
                gateway_reference,
                owner or "nobody",
            )
            raise InvalidTransitionError(
                "Payment does not belong to this account",
                detail={"gateway_reference": gateway_reference},
            )
        return self.complete_checkout(
            user_id=user_id,
            plan=parse_plan_key(payment.get("plan")),
            gateway_reference=str(payment.get("reference") or gateway_reference),
            period_start=coerce_timestamp(payment.get("current_period_start")),
            period_end=coerce_timestamp(payment.get("current_period_end")),
        )

    # Cancellation ----------------------------------------------------------

    def request_cancellation(self, user_id: str, *, now: Optional[datetime] = None) -> Subscription:
        """Ask the gateway to stop renewing, then flag the local row.

        The local flag is only written after the gateway confirms. A gateway
        failure leaves the row untouched; a store failure after the gateway
        confirmed surfaces as :class:`StoreReconciliationError`.
        """

        current_time = now or self._now()
        subscription = self.store.find_latest_by_user(user_id)
        if subscription is None or subscription.plan == PlanKey.FREE:
            raise SubscriptionNotFoundError(
                "No paid subscription to cancel",
                detail={"user_id": user_id},
            )
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Cannot cancel a subscription in status {subscription.status.value!r}",
                detail={"subscription_id": subscription.id, "status": subscription.status.value},
            )
        if subscription.cancel_at_period_end:
            return subscription
        if not subscription.gateway_subscription_id:
            raise MissingGatewaySubscriptionError(
                "Subscription has no gateway reference to cancel",
                detail={"subscription_id": subscription.id},
            )

        raw_ack = self._call_gateway(
            "cancel_at_period_end",
            self.gateway.cancel_at_period_end,
            subscription.gateway_subscription_id,
        )
        ack = GatewayCancellation(
            gateway_subscription_id=subscription.gateway_subscription_id,
            status=str(raw_ack.get("status", "")),
            cancel_at_period_end=bool(raw_ack.get("cancel_at_period_end")),
            current_period_end=raw_ack.get("current_period_end"),
        )
        if not ack.cancel_at_period_end:
            raise GatewayError(
                "Gateway did not confirm cancellation at period end",
                detail={"gateway_subscription_id": ack.gateway_subscription_id, "status": ack.status},
            )
        if ack.current_period_end and ack.current_period_end != subscription.current_period_end:
            logger.warning(
                "Gateway period end %s differs from stored %s for subscription %s",
                ack.current_period_end.isoformat(),
                subscription.current_period_end.isoformat() if subscription.current_period_end else None,
                subscription.id,
            )

        try:
            updated = self.store.update_by_id(
                subscription.id,
                {"cancel_at_period_end": True, "updated_at": current_time},
            )
        except Exception as exc:
            logger.exception(
                "Gateway cancelled %s but the store update failed",
                subscription.gateway_subscription_id,
            )
            raise StoreReconciliationError(
                "Cancellation was accepted by the gateway but could not be saved",
                detail={"subscription_id": subscription.id},
            ) from exc
        if updated is None:
            raise StoreReconciliationError(
                "Cancellation was accepted by the gateway but the subscription row disappeared",
                detail={"subscription_id": subscription.id},
            )

        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.CANCELLATION_REQUESTED,
                subscription_id=updated.id,
                actor_id=updated.user_id,
                occurred_at=current_time,
            )
        )
        return updated

    # Expiry ----------------------------------------------------------------

    def sweep_expired(self, *, now: Optional[datetime] = None) -> SweepReport:
        """Expire cancelled subscriptions whose paid period has passed.

        Safe to run repeatedly: rows already expired are never selected, and
        each write re-checks status, flag and period end.
        """

        current_time = now or self._now()
        candidates = list(self.store.find_all_expired_active(current_time))
        expired = 0
        skipped = 0
        for candidate in candidates:
            try:
                updated = self.store.compare_and_set_status(
                    candidate.id,
                    expected={SubscriptionStatus.ACTIVE},
                    status=SubscriptionStatus.EXPIRED,
                    changes={"updated_at": current_time},
                    require_cancel_at_period_end=True,
                    period_ended_before=current_time,
                )
            except Exception:
                logger.exception("Expiry sweep failed for subscription %s", candidate.id)
                skipped += 1
                continue
            if updated is None:
                skipped += 1
                continue
            expired += 1
            self._after_expiry(updated, current_time)

        report = SweepReport(
            ran_at=current_time,
            candidates=len(candidates),
            expired=expired,
            skipped=skipped,
        )
        if candidates:
            logger.info(
                "Expiry sweep finished candidates=%s expired=%s skipped=%s",
                report.candidates,
                report.expired,
                report.skipped,
            )
        return report

    def _after_expiry(self, subscription: Subscription, occurred_at: datetime) -> None:
        self.notifier.notify_subscription_expired(subscription)
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.SUBSCRIPTION_EXPIRED,
                subscription_id=subscription.id,
                actor_id=subscription.user_id,
                occurred_at=occurred_at,
            )
        )

    # Webhooks --------------------------------------------------------------

    def handle_webhook(self, event: WebhookEvent) -> WebhookOutcome:
        """Apply a gateway event once; redeliveries of the same event id are no-ops."""

        if not self.store.record_webhook_event(event):
            logger.debug("Ignoring replayed webhook event %s", event.event_id)
            return WebhookOutcome.DUPLICATE

        try:
            return self._dispatch_webhook(event)
        except Exception:
            # Let the gateway's redelivery retry the event.
            self.store.forget_webhook_event(event.event_id)
            raise

    def _dispatch_webhook(self, event: WebhookEvent) -> WebhookOutcome:
        gateway_id = event.gateway_subscription_id
        subscription = self.store.find_by_gateway_subscription_id(gateway_id) if gateway_id else None

        if subscription is None and event.event_type in _OPENING_EVENTS:
            return self._handle_subscription_created(event)
        if subscription is None:
            logger.warning(
                "Webhook %s (%s) references unknown gateway subscription %s",
                event.event_id,
                event.event_type.value,
                gateway_id,
            )
            return WebhookOutcome.IGNORED

        if event.event_type == WebhookEventType.SUBSCRIPTION_DELETED:
            return self._handle_subscription_deleted(subscription, event)
        if event.event_type == WebhookEventType.INVOICE_PAYMENT_FAILED:
            return self._handle_payment_failed(subscription, event)
        if event.event_type == WebhookEventType.INVOICE_PAYMENT_SUCCEEDED:
            return self._handle_payment_succeeded(subscription, event)
        return self._handle_subscription_updated(subscription, event)

    def _handle_subscription_created(self, event: WebhookEvent) -> WebhookOutcome:
        payload = event.payload
        user_id = payload.get("user_id")
        plan = payload.get("plan")
        if not user_id or not plan:
            logger.info(
                "Subscription created event %s carries no user/plan metadata; waiting for checkout",
                event.event_id,
            )
            return WebhookOutcome.IGNORED

        gateway_status = str(payload.get("status", "")).lower()
        if gateway_status not in _PAID_GATEWAY_STATUSES:
            logger.info(
                "Subscription created event %s has gateway status %r; waiting for payment",
                event.event_id,
                gateway_status,
            )
            return WebhookOutcome.IGNORED

        self.complete_checkout(
            user_id=str(user_id),
            plan=parse_plan_key(plan),
            gateway_reference=event.gateway_subscription_id,
            now=event.received_at,
            period_start=coerce_timestamp(payload.get("current_period_start")),
            period_end=coerce_timestamp(payload.get("current_period_end")),
        )
        return WebhookOutcome.APPLIED

    def _handle_subscription_deleted(self, subscription: Subscription, event: WebhookEvent) -> WebhookOutcome:
        updated = self.store.compare_and_set_status(
            subscription.id,
            expected=_LIVE_STATUSES,
            status=SubscriptionStatus.EXPIRED,
            changes={"updated_at": event.received_at},
        )
        if updated is None:
            return WebhookOutcome.NO_OP
        self._after_expiry(updated, event.received_at)
        return WebhookOutcome.APPLIED

    def _handle_payment_failed(self, subscription: Subscription, event: WebhookEvent) -> WebhookOutcome:
        updated = self.store.compare_and_set_status(
            subscription.id,
            expected={SubscriptionStatus.ACTIVE},
            status=SubscriptionStatus.PAST_DUE,
            changes={"updated_at": event.received_at},
        )
        if updated is None:
            return WebhookOutcome.NO_OP

        invoice_id = event.payload.get("invoice_id")
        failure = PaymentFailure(
            subscription_id=updated.id,
            user_id=updated.user_id,
            gateway_subscription_id=updated.gateway_subscription_id,
            invoice_id=str(invoice_id) if invoice_id else None,
            amount_due=int(event.payload.get("amount_due") or 0),
            currency=str(event.payload.get("currency") or "eur"),
            occurred_at=event.received_at,
        )
        self.notifier.notify_payment_failure(failure)
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.PAYMENT_FAILED,
                subscription_id=updated.id,
                actor_id=updated.user_id,
                metadata={"invoice_id": failure.invoice_id or ""},
                occurred_at=event.received_at,
            )
        )
        return WebhookOutcome.APPLIED

    def _handle_payment_succeeded(self, subscription: Subscription, event: WebhookEvent) -> WebhookOutcome:
        changes = self._period_changes(subscription, event.payload)
        if subscription.status == SubscriptionStatus.PAST_DUE:
            updated = self.store.compare_and_set_status(
                subscription.id,
                expected={SubscriptionStatus.PAST_DUE},
                status=SubscriptionStatus.ACTIVE,
                changes={**changes, "updated_at": event.received_at},
            )
            audit_type = BillingAuditEventType.PAYMENT_RECOVERED
        elif subscription.status == SubscriptionStatus.ACTIVE and changes:
            # Renewal: the gateway reports the newly paid period.
            updated = self.store.compare_and_set_status(
                subscription.id,
                expected={SubscriptionStatus.ACTIVE},
                status=SubscriptionStatus.ACTIVE,
                changes={**changes, "updated_at": event.received_at},
            )
            audit_type = BillingAuditEventType.SUBSCRIPTION_UPDATED
        else:
            return WebhookOutcome.NO_OP

        if updated is None:
            return WebhookOutcome.NO_OP
        self.event_logger.log(
            BillingAuditEvent(
                event_type=audit_type,
                subscription_id=updated.id,
                actor_id=updated.user_id,
                occurred_at=event.received_at,
            )
        )
        return WebhookOutcome.APPLIED

    def _handle_subscription_updated(self, subscription: Subscription, event: WebhookEvent) -> WebhookOutcome:
        if subscription.status == SubscriptionStatus.EXPIRED:
            return WebhookOutcome.NO_OP

        payload = event.payload
        changes: Dict[str, object] = dict(self._period_changes(subscription, payload))
        remote_flag = payload.get("cancel_at_period_end")
        if isinstance(remote_flag, bool) and remote_flag != subscription.cancel_at_period_end:
            changes["cancel_at_period_end"] = remote_flag

        target_status = subscription.status
        remote_status = _GATEWAY_STATUS_MAP.get(str(payload.get("status", "")).lower())
        if remote_status is not None:
            target_status = remote_status

        if not changes and target_status == subscription.status:
            return WebhookOutcome.NO_OP

        updated = self.store.compare_and_set_status(
            subscription.id,
            expected={subscription.status},
            status=target_status,
            changes={**changes, "updated_at": event.received_at},
        )
        if updated is None:
            return WebhookOutcome.NO_OP

        if target_status == SubscriptionStatus.EXPIRED:
            self._after_expiry(updated, event.received_at)
            return WebhookOutcome.APPLIED
        if target_status == SubscriptionStatus.CANCELED and subscription.status != SubscriptionStatus.CANCELED:
            audit_type = BillingAuditEventType.SUBSCRIPTION_CANCELED
        else:
            audit_type = BillingAuditEventType.SUBSCRIPTION_UPDATED
        self.event_logger.log(
            BillingAuditEvent(
                event_type=audit_type,
                subscription_id=updated.id,
                actor_id=updated.user_id,
                metadata={key: str(value) for key, value in changes.items()},
                occurred_at=event.received_at,
            )
        )
        return WebhookOutcome.APPLIED

    @staticmethod
    def _period_changes(subscription: Subscription, payload: Mapping[str, object]) -> Dict[str, object]:
        """Period bounds reported by the gateway that move the stored period forward."""

        start = coerce_timestamp(payload.get("current_period_start"))
        end = coerce_timestamp(payload.get("current_period_end"))
        if end is None or (start is not None and start >= end):
            return {}
        stored_end = subscription.current_period_end
        if stored_end is not None and end <= stored_end:
            return {}
        changes: Dict[str, object] = {"current_period_end": end}
        if start is not None:
            changes["current_period_start"] = start
        return changes

    # Helpers ---------------------------------------------------------------

    def _purchasable_plan(self, plan: object) -> PlanDefinition:
        definition = get_plan_definition(plan)
        if definition.key == PlanKey.FREE:
            raise InvalidTransitionError("The free plan cannot be purchased", detail={"plan": "free"})
        return definition

    def _call_gateway(self, operation: str, func: Callable[..., Dict[str, object]], *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except BillingError:
            raise
        except Exception as exc:
            logger.warning("Gateway call %s failed: %s", operation, exc)
            raise GatewayError(
                f"Payment gateway request failed during {operation}",
                detail={"operation": operation},
            ) from exc


__all__ = [
    "BillingEventLogger",
    "BillingNotifier",
    "PaymentGateway",
    "SubscriptionLifecycleService",
    "SubscriptionStore",
]
