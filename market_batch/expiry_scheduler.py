"""
CashbackExpiryScheduler -- In-process polling loop for cashback expiry.

Contract:
    Calls ``OrderFulfillmentOrchestrator.expire_cashback()`` every
    ``interval_seconds``, which defaults to the orchestrator's
    ``FulfillmentConfig.expiry_interval_seconds``.  Expiry is idempotent
    and single-flight inside the orchestrator, so an overlapping manual
    run is harmless.

Invariants enforced:
    - All timestamps come from the injected Clock.
    - Graceful shutdown: ``stop()`` wakes the loop, which finishes the
      current run and exits.
"""

from __future__ import annotations

import threading
from datetime import datetime

from market_kernel.domain.clock import Clock, SystemClock
from market_kernel.domain.dtos import ExpiryRunSummary
from market_kernel.logging_config import get_logger
from market_kernel.services.order_fulfillment import OrderFulfillmentOrchestrator

logger = get_logger("batch.expiry_scheduler")


class CashbackExpiryScheduler:
    """Runs cashback expiry on a fixed interval in a daemon thread.

    Contract:
        - ``tick()`` performs one expiry run and returns its summary.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
    """

    def __init__(
        self,
        orchestrator: OrderFulfillmentOrchestrator,
        interval_seconds: float | None = None,
        clock: Clock | None = None,
    ):
        if interval_seconds is None:
            interval_seconds = orchestrator.config.expiry_interval_seconds
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._orchestrator = orchestrator
        self._interval = interval_seconds
        self._clock = clock or SystemClock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_run_at: datetime | None = None
        self._runs = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> ExpiryRunSummary | None:
        """Run expiry once (public for testing).

        Returns the run summary, or None if the run failed.
        """
        started_at = self._clock.now()
        result = self._orchestrator.expire_cashback()
        self._last_run_at = started_at
        self._runs += 1
        if not result.is_success:
            logger.error(
                "expiry_tick_failed",
                extra={"error_code": result.code, "error_message": result.message},
            )
            return None

        summary = result.value
        logger.info(
            "expiry_tick_completed",
            extra={
                "started_at": started_at,
                "skipped": summary.skipped,
                "expired_count": summary.expired_count,
                "expired_amount": summary.expired_amount,
            },
        )
        return summary

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="cashback-expiry-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("expiry_scheduler_started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current run to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("expiry_scheduler_stopped", extra={"runs": self._runs})

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def last_run_at(self) -> datetime | None:
        return self._last_run_at

    @property
    def runs(self) -> int:
        return self._runs

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("expiry_tick_exception")
            self._stop_event.wait(timeout=self._interval)
