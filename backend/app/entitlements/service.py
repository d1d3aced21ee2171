"""Service resolving a user's current subscription and evaluating the policy."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from ..exceptions import PlanConfigurationError
from . import policy
from .models import EntitlementDecision, Subscription

logger = logging.getLogger(__name__)


class SubscriptionLookup(Protocol):
    """Read access to the subscription store."""

    def find_latest_by_user(self, user_id: str) -> Optional[Subscription]:
        ...


class EntitlementService:
    """Coordinates subscription lookup and policy evaluation.

    Every decision reads the store, so a transition written by a webhook or
    by another worker is visible to the next evaluation.
    """

    def __init__(
        self,
        subscriptions: SubscriptionLookup,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def current_subscription(self, user_id: str) -> Optional[Subscription]:
        """Return the newest subscription row for ``user_id`` (``None`` for the free tier)."""

        return self._subscriptions.find_latest_by_user(user_id)

    def evaluate(self, user_id: str, *, now: Optional[datetime] = None) -> EntitlementDecision:
        """Evaluate the entitlement policy for ``user_id`` at a single instant.

        Store failures resolve to the free tier so the caller renders a
        watermarked document instead of failing. Configuration errors such as
        an unknown plan id on the stored row are raised.
        """

        instant = now or self._clock()
        try:
            subscription = self.current_subscription(user_id)
        except PlanConfigurationError:
            logger.error("Subscription for user %s references an unknown plan", user_id)
            raise
        except Exception:
            logger.exception("Failed to load subscription for user %s; failing closed", user_id)
            subscription = None
        return policy.evaluate(subscription, instant)
