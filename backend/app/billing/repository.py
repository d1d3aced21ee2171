"""PostgreSQL subscription store."""
from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Collection, Iterable, List, Mapping, Optional, Tuple

import psycopg2
import psycopg2.extras
from psycopg2 import sql
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from backend.app_context import get_conn

from ..entitlements.catalog import parse_plan_key
from ..entitlements.models import Subscription, SubscriptionStatus
from .models import SinglePurchaseGrant, WebhookEvent

# Columns a lifecycle transition may write.
_MUTABLE_COLUMNS = frozenset(
    {
        "status",
        "current_period_start",
        "current_period_end",
        "cancel_at_period_end",
        "gateway_subscription_id",
        "updated_at",
    }
)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_subscription(row: Mapping[str, object]) -> Subscription:
    return Subscription(
        id=row["id"],
        user_id=str(row["user_id"]),
        plan=parse_plan_key(row["plan"]),
        status=SubscriptionStatus(row["status"]),
        current_period_start=row.get("current_period_start"),
        current_period_end=row.get("current_period_end"),
        cancel_at_period_end=bool(row.get("cancel_at_period_end")),
        gateway_subscription_id=row.get("gateway_subscription_id"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _assignments(changes: Mapping[str, object]) -> Tuple[List[sql.Composable], List[object]]:
    unknown = set(changes) - _MUTABLE_COLUMNS
    if unknown:
        raise ValueError(f"Cannot update subscription columns: {', '.join(sorted(unknown))}")

    clauses: List[sql.Composable] = []
    params: List[object] = []
    for column, value in changes.items():
        clauses.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
        params.append(value.value if isinstance(value, Enum) else value)
    return clauses, params


class PostgresSubscriptionStore:
    """Subscription store backed by the ``subscriptions`` table (see ``schema.sql``)."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, _managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
            finally:
                cursor.close()

    def insert(self, subscription: Subscription) -> Subscription:
        """Insert a new row; a second insert for the same gateway subscription returns the first."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO subscriptions (
                    id,
                    user_id,
                    plan,
                    status,
                    current_period_start,
                    current_period_end,
                    cancel_at_period_end,
                    gateway_subscription_id,
                    created_at,
                    updated_at
                )
                VALUES (%(id)s, %(user_id)s, %(plan)s, %(status)s, %(current_period_start)s,
                        %(current_period_end)s, %(cancel_at_period_end)s,
                        %(gateway_subscription_id)s, %(created_at)s, %(updated_at)s)
                ON CONFLICT (gateway_subscription_id) DO NOTHING
                RETURNING *
                """,
                {
                    "id": subscription.id,
                    "user_id": subscription.user_id,
                    "plan": subscription.plan.value,
                    "status": subscription.status.value,
                    "current_period_start": subscription.current_period_start,
                    "current_period_end": subscription.current_period_end,
                    "cancel_at_period_end": subscription.cancel_at_period_end,
                    "gateway_subscription_id": subscription.gateway_subscription_id,
                    "created_at": subscription.created_at,
                    "updated_at": subscription.updated_at,
                },
            )
            row = cursor.fetchone()
            if row is None and subscription.gateway_subscription_id:
                cursor.execute(
                    "SELECT * FROM subscriptions WHERE gateway_subscription_id = %s LIMIT 1",
                    (subscription.gateway_subscription_id,),
                )
                row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist subscription")
            return _row_to_subscription(row)

    def update_by_id(self, subscription_id: str, changes: Mapping[str, object]) -> Optional[Subscription]:
        if not changes:
            return self.get(subscription_id)
        clauses, params = _assignments(changes)
        query = sql.SQL("UPDATE subscriptions SET {} WHERE id = %s RETURNING *").format(
            sql.SQL(", ").join(clauses)
        )
        with self._cursor() as cursor:
            cursor.execute(query, [*params, subscription_id])
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

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
        clauses, params = _assignments({**(changes or {}), "status": status})
        conditions: List[sql.Composable] = [sql.SQL("id = %s"), sql.SQL("status = ANY(%s)")]
        condition_params: List[object] = [subscription_id, [item.value for item in expected]]
        if require_cancel_at_period_end:
            conditions.append(sql.SQL("cancel_at_period_end"))
        if period_ended_before is not None:
            conditions.append(sql.SQL("current_period_end < %s"))
            condition_params.append(period_ended_before)

        query = sql.SQL("UPDATE subscriptions SET {} WHERE {} RETURNING *").format(
            sql.SQL(", ").join(clauses),
            sql.SQL(" AND ").join(conditions),
        )
        with self._cursor() as cursor:
            cursor.execute(query, [*params, *condition_params])
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def get(self, subscription_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM subscriptions WHERE id = %s LIMIT 1", (subscription_id,))
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def find_latest_by_user(self, user_id: str) -> Optional[Subscription]:
        """Newest row for ``user_id`` regardless of status; ties on ``created_at`` go to the later insert."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE user_id = %s
                ORDER BY created_at DESC, seq DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def find_by_gateway_subscription_id(self, gateway_subscription_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE gateway_subscription_id = %s
                LIMIT 1
                """,
                (gateway_subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def find_all_expired_active(self, now: datetime) -> List[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM subscriptions
                WHERE status = %s
                  AND cancel_at_period_end
                  AND current_period_end IS NOT NULL
                  AND current_period_end < %s
                ORDER BY current_period_end ASC
                """,
                (SubscriptionStatus.ACTIVE.value, now),
            )
            rows = cursor.fetchall() or []
            return [_row_to_subscription(row) for row in rows]

    def record_single_purchase(self, grant: SinglePurchaseGrant) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_single_purchases (
                    payment_reference,
                    grant_id,
                    user_id,
                    granted_at
                )
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (payment_reference) DO NOTHING
                """,
                (grant.payment_reference, grant.grant_id, grant.user_id, grant.granted_at),
            )
            return cursor.rowcount > 0

    def record_webhook_event(self, event: WebhookEvent) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_webhook_events (
                    event_id,
                    event_type,
                    gateway_subscription_id,
                    payload,
                    received_at
                )
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (event_id) DO NOTHING
                """,
                (
                    event.event_id,
                    event.event_type.value,
                    event.gateway_subscription_id,
                    psycopg2.extras.Json(event.payload, dumps=_dumps),
                    event.received_at,
                ),
            )
            return cursor.rowcount > 0

    def forget_webhook_event(self, event_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM billing_webhook_events WHERE event_id = %s", (event_id,))


def _dumps(value: object) -> str:
    return json.dumps(value, default=str)


__all__ = ["PostgresSubscriptionStore", "managed_connection"]
