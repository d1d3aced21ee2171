"""Error taxonomy shared by the plan catalog and the subscription lifecycle."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


class BillingError(Exception):
    """Base class for billing failures surfaced to API callers."""

    code = "billing_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, detail: Optional[Mapping[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = dict(detail or {})

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        body.update(self.detail)
        return body

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


class PlanConfigurationError(BillingError, KeyError):
    """An unknown plan id or an unmapped gateway price reached the billing core.

    Never recovered by substituting the free plan.
    """

    code = "plan_configuration_error"

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return self.message


class GatewayError(BillingError):
    """The payment gateway rejected or failed a request; local state is unchanged."""

    code = "gateway_error"
    status_code = status.HTTP_502_BAD_GATEWAY


class MissingGatewaySubscriptionError(BillingError):
    code = "missing_gateway_subscription"
    status_code = status.HTTP_409_CONFLICT


class SubscriptionNotFoundError(BillingError, LookupError):
    code = "subscription_not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransitionError(BillingError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class StoreReconciliationError(BillingError):
    """The gateway acknowledged a change but persisting it locally failed.

    The store is healed by a later re-fetch or a replayed webhook; there is no
    two-phase commit between gateway and store.
    """

    code = "store_reconciliation_required"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class WebhookVerificationError(BillingError):
    code = "invalid_webhook"
    status_code = status.HTTP_400_BAD_REQUEST


__all__ = [
    "BillingError",
    "GatewayError",
    "InvalidTransitionError",
    "MissingGatewaySubscriptionError",
    "PlanConfigurationError",
    "StoreReconciliationError",
    "SubscriptionNotFoundError",
    "WebhookVerificationError",
]
