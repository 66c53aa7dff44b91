"""
Tests for portfolio_batch.scheduler -- RecalculationScheduler.

Validates the manual trigger, the busy no-op, the startup-then-interval
loop and graceful shutdown.  Passes are plain callables; no database.
"""

import threading

import pytest

from portfolio_batch.scheduler import RecalculationScheduler

WAIT = 5.0


class TestTrigger:

    def test_trigger_returns_pass_result(self):
        scheduler = RecalculationScheduler(lambda: "result")

        assert scheduler.trigger() == "result"
        assert scheduler.last_result == "result"
        assert scheduler.run_count == 1

    def test_trigger_while_busy_is_a_no_op(self, captured_logs):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def run_pass():
            calls.append(1)
            started.set()
            release.wait(WAIT)
            return "first"

        scheduler = RecalculationScheduler(run_pass)
        results = []
        worker = threading.Thread(target=lambda: results.append(scheduler.trigger()))
        worker.start()
        assert started.wait(WAIT)

        assert scheduler.is_busy
        assert scheduler.trigger() is None

        release.set()
        worker.join(WAIT)
        assert results == ["first"]
        assert len(calls) == 1
        assert scheduler.run_count == 1
        assert not scheduler.is_busy
        assert any(r["message"] == "recalculation_skipped_busy" for r in captured_logs())

    def test_trigger_propagates_failure(self):
        def run_pass():
            raise RuntimeError("database unavailable")

        scheduler = RecalculationScheduler(run_pass)

        with pytest.raises(RuntimeError):
            scheduler.trigger()
        assert not scheduler.is_busy
        assert scheduler.run_count == 0


class TestLifecycle:

    def test_runs_after_startup_delay_then_on_interval(self):
        ran_twice = threading.Event()
        calls = []

        def run_pass():
            calls.append(1)
            if len(calls) >= 2:
                ran_twice.set()
            return len(calls)

        scheduler = RecalculationScheduler(
            run_pass, startup_delay_seconds=0.01, interval_seconds=0.01,
        )
        scheduler.start()
        try:
            assert scheduler.is_running
            assert ran_twice.wait(WAIT)
        finally:
            scheduler.stop(timeout=WAIT)

        assert not scheduler.is_running
        assert scheduler.run_count >= 2

    def test_stop_during_startup_delay_runs_nothing(self):
        calls = []
        scheduler = RecalculationScheduler(
            lambda: calls.append(1), startup_delay_seconds=60, interval_seconds=60,
        )
        scheduler.start()
        scheduler.stop(timeout=WAIT)

        assert not scheduler.is_running
        assert calls == []

    def test_start_twice_keeps_one_thread(self):
        scheduler = RecalculationScheduler(
            lambda: None, startup_delay_seconds=60, interval_seconds=60,
        )
        scheduler.start()
        first = scheduler._thread
        scheduler.start()
        try:
            assert scheduler._thread is first
        finally:
            scheduler.stop(timeout=WAIT)

    def test_failing_pass_does_not_stop_the_loop(self, captured_logs):
        recovered = threading.Event()
        calls = []

        def run_pass():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("transient failure")
            recovered.set()
            return "ok"

        scheduler = RecalculationScheduler(
            run_pass, startup_delay_seconds=0.01, interval_seconds=0.01,
        )
        scheduler.start()
        try:
            assert recovered.wait(WAIT)
        finally:
            scheduler.stop(timeout=WAIT)

        assert scheduler.last_result == "ok"
        assert any(
            r["message"] == "scheduled_recalculation_failed" for r in captured_logs()
        )
