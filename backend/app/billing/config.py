"""Billing configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional
import os

from ..entitlements.models import PlanKey


@dataclass(frozen=True)
class BillingConfig:
    """Configuration for the payment gateway and the expiry sweep."""

    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    price_ids: Dict[PlanKey, str] = field(default_factory=dict)
    frontend_url: str = "http://localhost:5173"
    currency: str = "eur"
    expiry_sweep_interval: int = 3600
    expiry_sweep_enabled: bool = True

    @property
    def uses_sandbox(self) -> bool:
        return not self.stripe_secret_key

    @property
    def default_success_url(self) -> str:
        return f"{self.frontend_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}"

    @property
    def default_cancel_url(self) -> str:
        return f"{self.frontend_url}/pricing?canceled=true"


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    price_ids: Dict[PlanKey, str] = {}
    for plan in (PlanKey.SINGLE, PlanKey.MONTHLY, PlanKey.YEARLY):
        price_id = (env_mapping.get(f"STRIPE_{plan.value.upper()}_PRICE_ID") or "").strip()
        if price_id:
            price_ids[plan] = price_id

    frontend_url = env_mapping.get("FRONTEND_URL") or "http://localhost:5173"
    currency = (env_mapping.get("BILLING_CURRENCY") or "eur").strip().lower()

    return BillingConfig(
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        stripe_webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        price_ids=price_ids,
        frontend_url=frontend_url.rstrip("/"),
        currency=currency,
        expiry_sweep_interval=max(60, _to_int(env_mapping.get("EXPIRY_SWEEP_INTERVAL"), default=3600)),
        expiry_sweep_enabled=_to_bool(env_mapping.get("EXPIRY_SWEEP_ENABLED"), default=True),
    )


__all__ = ["BillingConfig", "load_billing_config"]
