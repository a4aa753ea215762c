"""Tests for the background Gmail poller.

The sync engine is replaced by a scripted stand-in so the tests exercise
the loop, the start/stop gate and status publication only.
"""

import threading

import pytest

from conftest import wait_until
from ingest.error_tracking import AuthRequiredError, RateLimitedError
from ingest.gmail_poller import (
    SYNC_RESULT_EVENT,
    SYNC_STATUS_EVENT,
    GmailPoller,
    SyncState,
)
from ingest.gmail_sync import SyncCycleResult


class ScriptedEngine:
    """run_cycle() raises or returns the scripted outcomes in order, then succeeds."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self._lock = threading.Lock()

    def run_cycle(self):
        with self._lock:
            self.calls += 1
            outcome = self.outcomes.pop(0) if self.outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        return outcome or SyncCycleResult(mode="incremental")


@pytest.fixture
def make_poller(config, notifier):
    pollers = []

    def factory(engine):
        poller = GmailPoller(engine, config, notifier)
        pollers.append(poller)
        return poller

    yield factory

    for poller in pollers:
        poller.shutdown(timeout=2)


def states(notifier):
    return [payload["state"] for payload in notifier.payloads(SYNC_STATUS_EVENT)]


# ============================================================================
# MANUAL SYNC
# ============================================================================


def test_sync_now_publishes_status_and_result(make_poller, notifier):
    poller = make_poller(ScriptedEngine(SyncCycleResult(new_transactions=2, mode="initial")))

    result = poller.sync_now()

    assert result.new_transactions == 2
    assert states(notifier) == ["syncing", "idle"]
    assert notifier.payloads(SYNC_RESULT_EVENT)[0]["new_transactions"] == 2
    assert poller.status.state == SyncState.IDLE


def test_sync_now_rate_limited(make_poller, notifier):
    poller = make_poller(ScriptedEngine(RateLimitedError("quota", status_code=429)))

    with pytest.raises(RateLimitedError):
        poller.sync_now()

    assert states(notifier) == ["syncing", "rate_limited"]
    assert notifier.payloads(SYNC_RESULT_EVENT) == []


def test_sync_now_error_detail(make_poller, notifier):
    poller = make_poller(ScriptedEngine(RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        poller.sync_now()

    assert poller.status.to_dict() == {"state": "error", "detail": "boom"}


# ============================================================================
# BACKGROUND LOOP
# ============================================================================


def test_not_polling_until_started(make_poller):
    engine = ScriptedEngine()
    poller = make_poller(engine)

    poller.launch()

    assert not poller.is_polling
    assert not wait_until(lambda: engine.calls > 0, timeout=0.2)


def test_polls_repeatedly_until_stopped(make_poller):
    engine = ScriptedEngine()
    poller = make_poller(engine)

    poller.start()
    assert poller.is_polling
    assert wait_until(lambda: engine.calls >= 3)

    poller.stop()
    assert not poller.is_polling

    # At most the in-flight cycle completes after stop
    settled = engine.calls
    assert not wait_until(lambda: engine.calls > settled + 1, timeout=0.3)


def test_rate_limit_keeps_polling(make_poller, notifier):
    engine = ScriptedEngine(RateLimitedError("quota", status_code=429))
    poller = make_poller(engine)

    poller.start()

    assert wait_until(lambda: engine.calls >= 2)
    assert poller.is_polling
    assert "rate_limited" in states(notifier)


def test_unexpected_error_keeps_polling(make_poller):
    engine = ScriptedEngine(RuntimeError("boom"))
    poller = make_poller(engine)

    poller.start()

    assert wait_until(lambda: engine.calls >= 2)
    assert poller.is_polling


def test_auth_required_stops_polling(make_poller, notifier):
    engine = ScriptedEngine(AuthRequiredError("Gmail is not connected"))
    poller = make_poller(engine)

    poller.start()

    assert wait_until(lambda: not poller.is_polling)
    assert poller.status.state == SyncState.AUTH_REQUIRED
    assert engine.calls == 1

    # Restart after re-authorization resumes cycles
    poller.start()
    assert wait_until(lambda: engine.calls >= 2)


def test_shutdown_joins_thread(make_poller):
    poller = make_poller(ScriptedEngine())
    poller.start()

    poller.shutdown(timeout=2)

    assert not poller.is_polling
    assert not poller._thread.is_alive()
