"""
Gmail Background Poller

One long-lived daemon thread runs sync cycles on an interval while polling
is enabled. start()/stop() only toggle the gate; a stop never interrupts a
cycle that is already running.

Status changes are published through the notifier as 'gmail:sync-status'
and successful cycles as 'gmail:sync-result'.
"""

import threading
from dataclasses import dataclass
from enum import Enum

from ingest.error_tracking import AuthRequiredError, RateLimitedError
from ingest.logging_config import get_logger

logger = get_logger(__name__)

SYNC_STATUS_EVENT = "gmail:sync-status"
SYNC_RESULT_EVENT = "gmail:sync-result"


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"
    AUTH_REQUIRED = "auth_required"


@dataclass(frozen=True)
class SyncStatus:
    state: SyncState
    detail: str | None = None

    def to_dict(self) -> dict:
        return {"state": self.state.value, "detail": self.detail}


IDLE = SyncStatus(SyncState.IDLE)
SYNCING = SyncStatus(SyncState.SYNCING)
RATE_LIMITED = SyncStatus(SyncState.RATE_LIMITED)
AUTH_REQUIRED = SyncStatus(SyncState.AUTH_REQUIRED)


class GmailPoller:
    """
    Background sync loop gated by start/stop.

    Args:
        engine: SyncEngine
        config: IngestConfig (poll interval)
        notifier: Callable(event, payload) for UI notifications
    """

    def __init__(self, engine, config, notifier=None):
        self.engine = engine
        self.config = config
        self.notifier = notifier or (lambda event, payload: None)

        self._cond = threading.Condition()
        self._enabled = False
        self._shutdown = False
        self._is_running = threading.Event()
        self._thread = None
        self._status = IDLE

    # ============================================================================
    # CONTROL
    # ============================================================================

    def launch(self) -> None:
        """Start the worker thread (idempotent); it waits until start()."""
        with self._cond:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run, name="gmail-poller", daemon=True
            )
            self._thread.start()

    def start(self) -> None:
        self.launch()
        with self._cond:
            self._enabled = True
            self._is_running.set()
            self._cond.notify_all()
        logger.info("Gmail polling started")

    def stop(self) -> None:
        with self._cond:
            self._enabled = False
            self._is_running.clear()
            self._cond.notify_all()
        logger.info("Gmail polling stopped")

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop the worker thread permanently."""
        with self._cond:
            self._enabled = False
            self._shutdown = True
            self._is_running.clear()
            self._cond.notify_all()
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def is_polling(self) -> bool:
        return self._is_running.is_set()

    @property
    def status(self) -> SyncStatus:
        return self._status

    # ============================================================================
    # CYCLES
    # ============================================================================

    def _publish(self, status: SyncStatus) -> None:
        self._status = status
        self.notifier(SYNC_STATUS_EVENT, status.to_dict())

    def sync_now(self):
        """
        Run one cycle on the caller's thread.

        Returns:
            SyncCycleResult

        Raises:
            Whatever the cycle raised, after publishing the matching status
        """
        self._publish(SYNCING)
        try:
            result = self.engine.run_cycle()
        except RateLimitedError:
            logger.warning("Gmail rate limit hit, deferring to next cycle")
            self._publish(RATE_LIMITED)
            raise
        except AuthRequiredError:
            self._publish(AUTH_REQUIRED)
            raise
        except Exception as e:
            self._publish(SyncStatus(SyncState.ERROR, str(e)))
            raise

        self._publish(IDLE)
        self.notifier(SYNC_RESULT_EVENT, result.to_dict())
        return result

    def _run_cycle(self) -> bool:
        """Run one polled cycle; returns False when polling must stop."""
        try:
            self.sync_now()
        except RateLimitedError:
            pass
        except AuthRequiredError as e:
            logger.warning(f"Gmail authorization required, polling stops: {e}")
            return False
        except Exception as e:
            logger.error(f"Gmail sync cycle failed: {e}", exc_info=True)
        return True

    def _run(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(lambda: self._enabled or self._shutdown)
                if self._shutdown:
                    return

            if not self._run_cycle():
                with self._cond:
                    self._enabled = False
                    self._is_running.clear()
                continue

            with self._cond:
                self._cond.wait_for(
                    lambda: not self._enabled or self._shutdown,
                    timeout=self.config.poll_interval_seconds,
                )
                if self._shutdown:
                    return
