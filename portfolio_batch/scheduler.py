"""
RecalculationScheduler -- In-process timer for the full recalculation pass.

Contract:
    ``start()`` runs a background thread that waits out a short startup
    delay, runs one pass, then runs one pass every interval until
    ``stop()``.  ``trigger()`` runs a pass on demand from any thread.

Invariants enforced:
    - At most one pass in flight.  A trigger or a tick arriving while a
      pass is running is a no-op and returns None.
    - Graceful shutdown: the stop signal interrupts the waits, never a
      running pass.
    - A failing scheduled pass is logged and the loop keeps going; a
      failing manual trigger raises to its caller.
"""

from __future__ import annotations

import threading
from typing import Callable

from portfolio_kernel.logging_config import get_logger

from portfolio_batch.recalculation import RecalculationResult

logger = get_logger("batch.scheduler")


class RecalculationScheduler:
    """Startup-then-interval scheduler with a manual trigger.

    Non-goals:
        - NOT a distributed scheduler (no leader election).
        - Does NOT own sessions; ``run_pass`` does.
    """

    def __init__(
        self,
        run_pass: Callable[[], RecalculationResult],
        startup_delay_seconds: float = 2.0,
        interval_seconds: float = 3600.0,
    ):
        self._run_pass = run_pass
        self._startup_delay = startup_delay_seconds
        self._interval = interval_seconds
        self._busy = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_result: RecalculationResult | None = None
        self._runs = 0

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def trigger(self) -> RecalculationResult | None:
        """Run one pass now.

        Returns:
            The pass result, or None when a pass was already running.
        """
        if not self._busy.acquire(blocking=False):
            logger.info("recalculation_skipped_busy")
            return None
        try:
            result = self._run_pass()
            self._last_result = result
            self._runs += 1
            return result
        finally:
            self._busy.release()

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="recalculation-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "startup_delay_seconds": self._startup_delay,
                "interval_seconds": self._interval,
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the thread to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    @property
    def last_result(self) -> RecalculationResult | None:
        return self._last_result

    @property
    def run_count(self) -> int:
        return self._runs

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        if self._stop_event.wait(timeout=self._startup_delay):
            return
        while not self._stop_event.is_set():
            try:
                self.trigger()
            except Exception:
                logger.exception("scheduled_recalculation_failed")
            self._stop_event.wait(timeout=self._interval)
