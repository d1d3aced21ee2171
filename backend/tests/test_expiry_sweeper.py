from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from backend import expiry_sweeper
from backend.app.billing import BillingConfig, SweepReport


def test_run_expiry_sweep_updates_metrics(monkeypatch):
    expiry_sweeper._reset_metrics_for_testing()

    run_time = datetime(2024, 8, 1, 9, tzinfo=timezone.utc)
    report = SweepReport(ran_at=run_time, candidates=4, expired=3, skipped=1)
    calls = []

    def fake_sweep(*, now=None):
        calls.append(now)
        return report

    monkeypatch.setattr(
        expiry_sweeper,
        "get_lifecycle_service",
        lambda: SimpleNamespace(sweep_expired=fake_sweep),
    )

    result = expiry_sweeper.run_expiry_sweep(now=run_time)

    assert result == report
    assert calls == [run_time]

    metrics = expiry_sweeper.get_sweep_metrics()
    assert metrics["runs"] == 1
    assert metrics["expired"] == 3
    assert metrics["skipped"] == 1
    assert metrics["failures"] == 0
    assert metrics["last_run_at"] == run_time.isoformat()
    assert metrics["last_success_at"] == run_time.isoformat()
    assert metrics["last_error"] is None


def test_run_expiry_sweep_records_failures(monkeypatch):
    expiry_sweeper._reset_metrics_for_testing()

    def failing_sweep(*, now=None):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(
        expiry_sweeper,
        "get_lifecycle_service",
        lambda: SimpleNamespace(sweep_expired=failing_sweep),
    )

    with pytest.raises(RuntimeError):
        expiry_sweeper.run_expiry_sweep(now=datetime(2024, 8, 1, 9, tzinfo=timezone.utc))

    metrics = expiry_sweeper.get_sweep_metrics()
    assert metrics["runs"] == 1
    assert metrics["failures"] == 1
    assert metrics["last_success_at"] is None
    assert metrics["last_error"] == "RuntimeError: database unavailable"


def test_naive_sweep_time_is_treated_as_utc(monkeypatch):
    expiry_sweeper._reset_metrics_for_testing()
    seen = []

    def fake_sweep(*, now=None):
        seen.append(now)
        return SweepReport(ran_at=now)

    monkeypatch.setattr(
        expiry_sweeper,
        "get_lifecycle_service",
        lambda: SimpleNamespace(sweep_expired=fake_sweep),
    )

    expiry_sweeper.run_expiry_sweep(now=datetime(2024, 8, 1, 9))

    assert seen[0].tzinfo == timezone.utc


def test_disabled_sweeper_does_not_start(monkeypatch):
    monkeypatch.setattr(
        expiry_sweeper,
        "get_billing_config",
        lambda: BillingConfig(stripe_secret_key=None, stripe_webhook_secret=None, expiry_sweep_enabled=False),
    )

    assert expiry_sweeper.start_expiry_sweeper(initial_delay=0) is False
    assert expiry_sweeper._worker is None


def test_start_and_shutdown_sweeper(monkeypatch):
    monkeypatch.setattr(
        expiry_sweeper,
        "get_billing_config",
        lambda: BillingConfig(stripe_secret_key=None, stripe_webhook_secret=None, expiry_sweep_interval=3600),
    )

    try:
        assert expiry_sweeper.start_expiry_sweeper(initial_delay=3600) is True
        worker = expiry_sweeper._worker
        assert worker is not None
        assert expiry_sweeper.start_expiry_sweeper(initial_delay=3600) is True
        assert expiry_sweeper._worker is worker
    finally:
        expiry_sweeper.shutdown_expiry_sweeper()

    assert expiry_sweeper._worker is None
    assert not worker.is_alive()
