from datetime import timedelta

import pytest

from backend.app.billing import PlanConfigurationError, SubscriptionStatus, WebhookEvent, WebhookEventType
from backend.app.billing.repository import PostgresSubscriptionStore

from conftest import T0, make_subscription


class FakeCursor:
    def __init__(self, *, fetchone_results=None, fetchall_result=None, rowcount=1):
        self.fetchone_results = list(fetchone_results or [])
        self.fetchall_result = list(fetchall_result or [])
        self.rowcount = rowcount
        self.execute_calls = []
        self.closed = False

    def execute(self, query, params=None):
        text = " ".join(query.split()) if isinstance(query, str) else query
        self.execute_calls.append((text, params))

    def fetchone(self):
        return self.fetchone_results.pop(0) if self.fetchone_results else None

    def fetchall(self):
        return list(self.fetchall_result)

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor
        self.cursor_calls = []

    def cursor(self, *args, **kwargs):
        self.cursor_calls.append((args, kwargs))
        return self._cursor


def _row(**overrides):
    row = {
        "id": "sub-1",
        "user_id": 7,
        "plan": "monthly",
        "status": "active",
        "current_period_start": T0,
        "current_period_end": T0 + timedelta(days=30),
        "cancel_at_period_end": False,
        "gateway_subscription_id": "sub_gw_1",
        "created_at": T0,
        "updated_at": T0,
    }
    row.update(overrides)
    return row


def test_find_latest_by_user_orders_by_creation():
    cursor = FakeCursor(fetchone_results=[_row()])
    store = PostgresSubscriptionStore(conn=FakeConnection(cursor))

    subscription = store.find_latest_by_user("7")

    query, params = cursor.execute_calls[0]
    assert "ORDER BY created_at DESC, seq DESC" in query
    assert params == ("7",)
    assert subscription.user_id == "7"
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert cursor.closed is True


def test_unknown_plan_on_row_is_raised():
    cursor = FakeCursor(fetchone_results=[_row(plan="enterprise")])
    store = PostgresSubscriptionStore(conn=FakeConnection(cursor))

    with pytest.raises(PlanConfigurationError):
        store.find_latest_by_user("7")


def test_insert_returns_existing_row_on_conflict():
    existing = _row(id="sub-existing")
    cursor = FakeCursor(fetchone_results=[None, existing])
    store = PostgresSubscriptionStore(conn=FakeConnection(cursor))

    persisted = store.insert(make_subscription("sub-new"))

    assert persisted.id == "sub-existing"
    assert "ON CONFLICT (gateway_subscription_id) DO NOTHING" in cursor.execute_calls[0][0]
    assert cursor.execute_calls[1][1] == ("sub_gw_1",)


def test_find_all_expired_active_filters_on_flag_and_period():
    cursor = FakeCursor(fetchall_result=[_row(cancel_at_period_end=True)])
    store = PostgresSubscriptionStore(conn=FakeConnection(cursor))
    now = T0 + timedelta(days=31)

    rows = store.find_all_expired_active(now)

    query, params = cursor.execute_calls[0]
    assert "AND cancel_at_period_end" in query
    assert "current_period_end < %s" in query
    assert params == ("active", now)
    assert rows[0].cancel_at_period_end is True


def test_compare_and_set_status_passes_expected_statuses():
    cursor = FakeCursor(fetchone_results=[_row(status="expired")])
    store = PostgresSubscriptionStore(conn=FakeConnection(cursor))
    now = T0 + timedelta(days=31)

    updated = store.compare_and_set_status(
        "sub-1",
        expected={SubscriptionStatus.ACTIVE},
        status=SubscriptionStatus.EXPIRED,
        changes={"updated_at": now},
        require_cancel_at_period_end=True,
        period_ended_before=now,
    )

    _, params = cursor.execute_calls[0]
    assert params == [now, "expired", "sub-1", ["active"], now]
    assert updated.status == SubscriptionStatus.EXPIRED


def test_compare_and_set_status_misses_return_none():
    cursor = FakeCursor(fetchone_results=[])
    store = PostgresSubscriptionStore(conn=FakeConnection(cursor))

    assert (
        store.compare_and_set_status(
            "sub-1",
            expected={SubscriptionStatus.ACTIVE},
            status=SubscriptionStatus.PAST_DUE,
        )
        is None
    )


def test_update_rejects_unknown_columns():
    store = PostgresSubscriptionStore(conn=FakeConnection(FakeCursor()))

    with pytest.raises(ValueError):
        store.update_by_id("sub-1", {"user_id": "someone-else"})


def test_record_webhook_event_reports_duplicates():
    cursor = FakeCursor(rowcount=0)
    store = PostgresSubscriptionStore(conn=FakeConnection(cursor))
    event = WebhookEvent(
        event_id="evt_1",
        event_type=WebhookEventType.SUBSCRIPTION_DELETED,
        gateway_subscription_id="sub_gw_1",
        payload={"current_period_end": T0},
        received_at=T0,
    )

    assert store.record_webhook_event(event) is False
    query, params = cursor.execute_calls[0]
    assert "ON CONFLICT (event_id) DO NOTHING" in query
    assert params[0] == "evt_1"
    assert params[1] == "subscription.deleted"
