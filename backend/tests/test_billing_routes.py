from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from backend.app.billing import SubscriptionStatus
from backend.app.entitlements import EntitlementService
from backend.app.routes import billing as billing_routes
from backend.app.schemas.billing import (
    CheckoutSessionRequest,
    CompleteCheckoutRequest,
    RenderOptionsRequest,
)
from backend.app.services.billing import LocalSandboxPaymentGateway

from conftest import T0, make_subscription


@pytest.fixture
def user():
    return SimpleNamespace(id=7, email="owner@example.com", role="user")


@pytest.fixture
def wired(lifecycle_components, clock, monkeypatch):
    store, gateway, notifier, event_logger, service = lifecycle_components
    entitlements = EntitlementService(store, clock=clock)
    monkeypatch.setattr(billing_routes, "get_lifecycle_service", lambda: service)
    monkeypatch.setattr(billing_routes, "get_entitlement_service", lambda: entitlements)
    return SimpleNamespace(store=store, gateway=gateway, notifier=notifier, service=service, entitlements=entitlements)


def _webhook_body(body: dict) -> bytes:
    return json.dumps(body).encode()


def test_list_plans_hides_single_purchase():
    response = billing_routes.list_plans()

    ids = [plan.id.value for plan in response.plans]
    assert ids == ["free", "monthly", "yearly"]
    yearly = response.plans[-1]
    assert yearly.price == 9999
    assert yearly.popular is True


def test_checkout_session_uses_default_urls(wired, user):
    response = billing_routes.create_checkout_session(
        CheckoutSessionRequest(plan="monthly"),
        current_user=user,
    )

    assert response.session_id == "cs_1"
    assert wired.gateway.checkout_sessions[0]["user_id"] == "7"


def test_free_plan_checkout_is_rejected(wired, user):
    with pytest.raises(HTTPException) as exc:
        billing_routes.create_checkout_session(CheckoutSessionRequest(plan="free"), current_user=user)

    assert exc.value.status_code == 409


def test_complete_checkout_activates_subscription(wired, user):
    wired.gateway.payments["cs_1"] = {"paid": True, "plan": "yearly", "user_id": "7", "reference": "sub_gw_7"}

    response = billing_routes.complete_checkout(
        CompleteCheckoutRequest(gatewayReference="cs_1"),
        current_user=user,
    )

    assert response.suppress_watermark is True
    assert response.subscription.plan.value == "yearly"
    assert response.subscription.current_period_end == T0 + timedelta(days=365)


def test_cancel_without_subscription_is_404(wired, user):
    with pytest.raises(HTTPException) as exc:
        billing_routes.cancel_subscription(current_user=user)

    assert exc.value.status_code == 404
    assert exc.value.detail["error"] == "subscription_not_found"


def test_cancel_then_status_shows_pro_until_period_end(wired, user):
    wired.store.add(make_subscription(user_id="7"))

    cancelled = billing_routes.cancel_subscription(current_user=user)
    status = billing_routes.get_subscription_status(current_user=user)

    assert cancelled.cancel_at_period_end is True
    assert status.subscription.status == "active"
    assert status.entitlement.cancel_at_period_end is True
    assert status.entitlement.display_as_pro is True
    assert status.entitlement.suppress_watermark is True


def test_render_options_for_free_user(wired, user):
    response = billing_routes.get_render_options(RenderOptionsRequest(), current_user=user)

    assert response.suppress_watermark is False
    assert response.display_as_pro is False
    assert response.plan.value == "free"


def test_render_options_redeems_single_purchase_once(wired, user):
    wired.gateway.payments["pi_9"] = {"paid": True, "plan": "single", "user_id": "7", "reference": "pi_9"}
    request = RenderOptionsRequest(singlePurchaseReference="pi_9")

    first = billing_routes.get_render_options(request, current_user=user)

    assert first.suppress_watermark is True
    assert first.single_purchase is True
    assert first.display_as_pro is False

    with pytest.raises(HTTPException) as exc:
        billing_routes.get_render_options(request, current_user=user)
    assert exc.value.status_code == 409


def test_render_options_refuses_single_purchase_without_owner(wired, user):
    wired.gateway.payments["pi_anon"] = {"paid": True, "plan": "single", "user_id": None, "reference": "pi_anon"}

    with pytest.raises(HTTPException) as exc:
        billing_routes.get_render_options(RenderOptionsRequest(singlePurchaseReference="pi_anon"), current_user=user)

    assert exc.value.status_code == 409
    assert "pi_anon" not in wired.store.single_purchases


def test_render_options_for_subscriber_skips_single_purchase(wired, user):
    wired.store.add(make_subscription(user_id="7"))

    response = billing_routes.get_render_options(
        RenderOptionsRequest(singlePurchaseReference="pi_unused"),
        current_user=user,
    )

    assert response.suppress_watermark is True
    assert response.single_purchase is False
    assert "pi_unused" not in wired.store.single_purchases


def test_webhook_marks_subscription_past_due(wired, monkeypatch):
    wired.store.add(make_subscription(user_id="7"))
    monkeypatch.setattr(billing_routes, "get_payment_gateway", lambda: LocalSandboxPaymentGateway())
    body = {
        "id": "evt_1",
        "type": "invoice.payment_failed",
        "gatewaySubscriptionId": "sub_gw_1",
        "payload": {"invoice_id": "in_1", "amount_due": 999},
    }

    first = billing_routes.receive_webhook(_webhook_body(body), stripe_signature=None)
    replay = billing_routes.receive_webhook(_webhook_body(body), stripe_signature=None)

    assert first.outcome == "applied"
    assert replay.outcome == "duplicate"
    assert wired.store.rows["sub-1"].status == SubscriptionStatus.PAST_DUE
    assert len(wired.notifier.payment_failures) == 1


def test_malformed_webhook_is_rejected(wired, monkeypatch):
    monkeypatch.setattr(billing_routes, "get_payment_gateway", lambda: LocalSandboxPaymentGateway())

    with pytest.raises(HTTPException) as exc:
        billing_routes.receive_webhook(_webhook_body({"type": "nope"}), stripe_signature=None)

    assert exc.value.status_code == 400


def test_expiry_sweep_requires_admin(wired, user):
    with pytest.raises(HTTPException) as exc:
        billing_routes.run_expiry_sweep(current_user=user)

    assert exc.value.status_code == 403


def test_admin_can_trigger_expiry_sweep(wired, clock):
    wired.store.add(make_subscription(cancel_at_period_end=True))
    clock.advance(days=31)

    response = billing_routes.run_expiry_sweep(current_user=SimpleNamespace(id=1, role="admin"))

    assert response.expired == 1
    assert wired.store.rows["sub-1"].status == SubscriptionStatus.EXPIRED


def test_webhook_body_is_read_before_the_handler_runs():
    async def read_body():
        return b'{"id": "evt_1"}'

    body = asyncio.run(billing_routes._raw_body(SimpleNamespace(body=read_body)))

    assert body == b'{"id": "evt_1"}'
