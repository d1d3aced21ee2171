from datetime import timedelta

import pytest

from backend.app.entitlements import (
    PLAN_CATALOG,
    BillingInterval,
    PlanKey,
    get_plan_definition,
    listed_plans,
    parse_plan_key,
    period_end_for,
)
from backend.app.exceptions import PlanConfigurationError

from conftest import T0


def test_catalog_covers_every_plan_key():
    assert set(PLAN_CATALOG) == set(PlanKey)


def test_free_plan_never_grants_watermark_removal():
    free = get_plan_definition(PlanKey.FREE)

    assert free.price_minor_units == 0
    assert free.billing_interval == BillingInterval.NONE
    assert free.grants_watermark_removal is False
    assert free.is_recurring is False


@pytest.mark.parametrize("plan", [PlanKey.SINGLE, PlanKey.MONTHLY, PlanKey.YEARLY])
def test_paid_plans_grant_watermark_removal(plan):
    assert get_plan_definition(plan).grants_watermark_removal is True


def test_plan_lookup_accepts_raw_identifiers():
    assert get_plan_definition("yearly").key == PlanKey.YEARLY
    assert parse_plan_key("monthly") is PlanKey.MONTHLY


def test_unknown_plan_raises_configuration_error_instead_of_free():
    with pytest.raises(PlanConfigurationError) as excinfo:
        get_plan_definition("enterprise")

    assert excinfo.value.detail == {"plan": "enterprise"}
    assert "enterprise" in str(excinfo.value)


def test_configuration_error_is_a_key_error():
    with pytest.raises(KeyError):
        parse_plan_key("lifetime")


def test_period_end_uses_fixed_interval_lengths():
    assert period_end_for(PlanKey.MONTHLY, T0) == T0 + timedelta(days=30)
    assert period_end_for(PlanKey.YEARLY, T0) == T0 + timedelta(days=365)
    assert period_end_for(PlanKey.SINGLE, T0) is None
    assert period_end_for(PlanKey.FREE, T0) is None


def test_listed_plans_hide_single_purchase():
    keys = [plan.key for plan in listed_plans()]

    assert keys == [PlanKey.FREE, PlanKey.MONTHLY, PlanKey.YEARLY]
    assert get_plan_definition(PlanKey.YEARLY).popular is True
