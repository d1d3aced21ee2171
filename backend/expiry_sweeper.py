"""Background worker that expires cancelled subscriptions whose period has ended."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from threading import Event, Lock, Thread
from typing import Dict, Optional

from backend.app.billing import SweepReport
from backend.app.services.billing import get_billing_config, get_lifecycle_service

logger = logging.getLogger(__name__)

_scheduler_lock = Lock()
_worker: Optional["_SweepWorker"] = None

_SWEEP_METRICS: Dict[str, object] = {
    "runs": 0,
    "expired": 0,
    "skipped": 0,
    "failures": 0,
    "last_run_at": None,
    "last_success_at": None,
    "last_error": None,
}
_metrics_lock = Lock()


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["runs"] = int(_SWEEP_METRICS["runs"]) + 1
        _SWEEP_METRICS["last_run_at"] = started_at


def _record_run_success(report: SweepReport) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["expired"] = int(_SWEEP_METRICS["expired"]) + report.expired
        _SWEEP_METRICS["skipped"] = int(_SWEEP_METRICS["skipped"]) + report.skipped
        _SWEEP_METRICS["last_success_at"] = report.ran_at
        _SWEEP_METRICS["last_error"] = None


def _record_run_failure(error: Exception) -> None:
    with _metrics_lock:
        _SWEEP_METRICS["failures"] = int(_SWEEP_METRICS["failures"]) + 1
        _SWEEP_METRICS["last_error"] = f"{type(error).__name__}: {error}"


def run_expiry_sweep(*, now: Optional[datetime] = None) -> SweepReport:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    _record_run_start(current_time)
    try:
        report = get_lifecycle_service().sweep_expired(now=current_time)
    except Exception as exc:
        _record_run_failure(exc)
        logger.exception("Subscription expiry sweep failed")
        raise
    _record_run_success(report)
    logger.info(
        "Subscription expiry sweep completed",
        extra={
            "candidates": report.candidates,
            "expired": report.expired,
            "skipped": report.skipped,
        },
    )
    return report


class _SweepWorker(Thread):
    def __init__(self, *, initial_delay: float, interval: float):
        super().__init__(daemon=True, name="subscription-expiry-sweeper")
        self._initial_delay = max(0.0, initial_delay)
        self._interval = max(1.0, interval)
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        if self._stop_event.wait(self._initial_delay):
            return
        while not self._stop_event.is_set():
            try:
                run_expiry_sweep()
            except Exception:
                # Logged inside run_expiry_sweep; keep the schedule.
                pass
            if self._stop_event.wait(self._interval):
                break


def start_expiry_sweeper(*, initial_delay: float = 5.0) -> bool:
    """Start the sweep thread unless disabled; returns whether a worker is running."""

    global _worker
    config = get_billing_config()
    if not config.expiry_sweep_enabled:
        logger.info("Subscription expiry sweeper disabled")
        return False
    with _scheduler_lock:
        if _worker is not None:
            return True
        _worker = _SweepWorker(initial_delay=initial_delay, interval=config.expiry_sweep_interval)
        _worker.start()
        logger.info(
            "Subscription expiry sweeper started",
            extra={"interval_seconds": config.expiry_sweep_interval},
        )
        return True


def shutdown_expiry_sweeper() -> None:
    global _worker
    with _scheduler_lock:
        worker, _worker = _worker, None
        if worker is None:
            return
        worker.stop()
        worker.join(timeout=1.0)
        logger.info("Subscription expiry sweeper stopped")


def get_sweep_metrics() -> Dict[str, object]:
    with _metrics_lock:
        return {
            **_SWEEP_METRICS,
            "last_run_at": _SWEEP_METRICS["last_run_at"].isoformat() if _SWEEP_METRICS.get("last_run_at") else None,
            "last_success_at": (
                _SWEEP_METRICS["last_success_at"].isoformat() if _SWEEP_METRICS.get("last_success_at") else None
            ),
        }


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        _SWEEP_METRICS.update(
            {
                "runs": 0,
                "expired": 0,
                "skipped": 0,
                "failures": 0,
                "last_run_at": None,
                "last_success_at": None,
                "last_error": None,
            }
        )


__all__ = [
    "get_sweep_metrics",
    "run_expiry_sweep",
    "shutdown_expiry_sweeper",
    "start_expiry_sweeper",
]
