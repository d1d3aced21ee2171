from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import count
from typing import Collection, Dict, Mapping, Optional, Sequence

import pytest

from backend.app.billing import (
    BillingAuditEvent,
    GatewayError,
    PaymentFailure,
    SinglePurchaseGrant,
    Subscription,
    SubscriptionLifecycleService,
    SubscriptionStatus,
    WebhookEvent,
)
from backend.app.billing.service import (
    BillingEventLogger,
    BillingNotifier,
    PaymentGateway,
    SubscriptionStore,
)
from backend.app.entitlements import PlanKey
from backend.app.entitlements.catalog import PlanDefinition

T0 = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)


class InMemorySubscriptionStore(SubscriptionStore):
    def __init__(self) -> None:
        self.rows: Dict[str, Subscription] = {}
        self.sequence: Dict[str, int] = {}
        self.webhook_events: set[str] = set()
        self.single_purchases: Dict[str, SinglePurchaseGrant] = {}
        self.writes: list[tuple[str, str]] = []
        self.fail_updates = False
        self._counter = count(1)

    def add(self, subscription: Subscription) -> Subscription:
        self.rows[subscription.id] = subscription
        self.sequence[subscription.id] = next(self._counter)
        return subscription

    def insert(self, subscription: Subscription) -> Subscription:
        if subscription.gateway_subscription_id:
            existing = self.find_by_gateway_subscription_id(subscription.gateway_subscription_id)
            if existing is not None:
                return existing
        self.writes.append(("insert", subscription.id))
        return self.add(subscription)

    def update_by_id(self, subscription_id: str, changes: Mapping[str, object]) -> Optional[Subscription]:
        if self.fail_updates:
            raise RuntimeError("database unavailable")
        current = self.rows.get(subscription_id)
        if current is None:
            return None
        updated = current.model_copy(update=dict(changes))
        self.rows[subscription_id] = updated
        self.writes.append(("update", subscription_id))
        return updated

    def find_latest_by_user(self, user_id: str) -> Optional[Subscription]:
        candidates = [row for row in self.rows.values() if row.user_id == user_id]
        if not candidates:
            return None
        return max(candidates, key=lambda row: (row.created_at, self.sequence[row.id]))

    def find_by_gateway_subscription_id(self, gateway_subscription_id: str) -> Optional[Subscription]:
        for row in self.rows.values():
            if row.gateway_subscription_id == gateway_subscription_id:
                return row
        return None

    def find_all_expired_active(self, now: datetime) -> Sequence[Subscription]:
        return [
            row
            for row in self.rows.values()
            if row.status == SubscriptionStatus.ACTIVE
            and row.cancel_at_period_end
            and row.current_period_end is not None
            and row.current_period_end < now
        ]

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
        current = self.rows.get(subscription_id)
        if current is None or current.status not in set(expected):
            return None
        if require_cancel_at_period_end and not current.cancel_at_period_end:
            return None
        if period_ended_before is not None and (
            current.current_period_end is None or current.current_period_end >= period_ended_before
        ):
            return None
        updated = current.model_copy(update={**dict(changes or {}), "status": status})
        self.rows[subscription_id] = updated
        self.writes.append(("status", subscription_id))
        return updated

    def record_single_purchase(self, grant: SinglePurchaseGrant) -> bool:
        if grant.payment_reference in self.single_purchases:
            return False
        self.single_purchases[grant.payment_reference] = grant
        return True

    def record_webhook_event(self, event: WebhookEvent) -> bool:
        if event.event_id in self.webhook_events:
            return False
        self.webhook_events.add(event.event_id)
        return True

    def forget_webhook_event(self, event_id: str) -> None:
        self.webhook_events.discard(event_id)


class FakePaymentGateway(PaymentGateway):
    def __init__(self) -> None:
        self.checkout_sessions: list[Dict[str, object]] = []
        self.subscriptions_created: list[Dict[str, object]] = []
        self.payment_intents: list[Dict[str, object]] = []
        self.cancellations: list[str] = []
        self.payments: Dict[str, Dict[str, object]] = {}
        self.cancel_error: Optional[Exception] = None
        self.cancel_response: Dict[str, object] = {"status": "active", "cancel_at_period_end": True}

    def create_checkout_session(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        customer_email: Optional[str],
        success_url: str,
        cancel_url: str,
    ) -> Dict[str, object]:
        session_id = f"cs_{len(self.checkout_sessions) + 1}"
        payload = {
            "id": session_id,
            "url": f"https://gateway.test/checkout/{session_id}",
            "expires_at": T0 + timedelta(minutes=30),
            "plan": plan.key.value,
            "user_id": user_id,
        }
        self.checkout_sessions.append(payload)
        return payload

    def create_subscription(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        email: str,
        name: Optional[str],
    ) -> Dict[str, object]:
        gateway_id = f"sub_gw_{len(self.subscriptions_created) + 1}"
        payload = {
            "gateway_subscription_id": gateway_id,
            "client_secret": f"{gateway_id}_secret",
            "customer_id": "cus_1",
            "email": email,
        }
        self.subscriptions_created.append(payload)
        return payload

    def create_payment_intent(
        self,
        *,
        plan: PlanDefinition,
        user_id: str,
        email: Optional[str],
    ) -> Dict[str, object]:
        intent_id = f"pi_{len(self.payment_intents) + 1}"
        payload = {
            "id": intent_id,
            "client_secret": f"{intent_id}_secret",
            "amount": plan.price_minor_units,
            "currency": "EUR",
        }
        self.payment_intents.append(payload)
        return payload

    def cancel_at_period_end(self, gateway_subscription_id: str) -> Dict[str, object]:
        self.cancellations.append(gateway_subscription_id)
        if self.cancel_error is not None:
            raise self.cancel_error
        return dict(self.cancel_response)

    def retrieve_payment(self, reference: str) -> Dict[str, object]:
        if reference not in self.payments:
            raise GatewayError("unknown payment", detail={"gateway_reference": reference})
        return dict(self.payments[reference])


class FakeNotifier(BillingNotifier):
    def __init__(self) -> None:
        self.payment_failures: list[PaymentFailure] = []
        self.expired: list[Subscription] = []

    def notify_payment_failure(self, failure: PaymentFailure) -> None:
        self.payment_failures.append(failure)

    def notify_subscription_expired(self, subscription: Subscription) -> None:
        self.expired.append(subscription)


class FakeEventLogger(BillingEventLogger):
    def __init__(self) -> None:
        self.events: list[BillingAuditEvent] = []

    def log(self, event: BillingAuditEvent) -> None:
        self.events.append(event)


class Clock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_subscription(
    subscription_id: str = "sub-1",
    *,
    user_id: str = "user-1",
    plan: PlanKey = PlanKey.MONTHLY,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    start: Optional[datetime] = T0,
    end: object = T0 + timedelta(days=30),
    cancel_at_period_end: bool = False,
    gateway_subscription_id: Optional[str] = "sub_gw_1",
    created_at: datetime = T0,
) -> Subscription:
    return Subscription(
        id=subscription_id,
        user_id=user_id,
        plan=plan,
        status=status,
        current_period_start=start,
        current_period_end=end,
        cancel_at_period_end=cancel_at_period_end,
        gateway_subscription_id=gateway_subscription_id,
        created_at=created_at,
        updated_at=created_at,
    )


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def lifecycle_components(clock):
    store = InMemorySubscriptionStore()
    gateway = FakePaymentGateway()
    notifier = FakeNotifier()
    event_logger = FakeEventLogger()
    service = SubscriptionLifecycleService(
        store=store,
        gateway=gateway,
        notifier=notifier,
        event_logger=event_logger,
        clock=clock,
    )
    return store, gateway, notifier, event_logger, service
