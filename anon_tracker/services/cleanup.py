# anon_tracker/services/cleanup.py

import logging
import threading

from anon_tracker.utils.time import next_daily_run, utcnow

logger = logging.getLogger(__name__)

DEFAULT_HOUR_UTC = 2
DEFAULT_MINUTE_UTC = 30
DEFAULT_DAYS_INACTIVE = 14


class CleanupScheduler:
    """
    Background thread that evicts idle sessions once a day.
    Fires at hour:minute UTC, chosen to stay clear of peak traffic.
    """

    def __init__(self, store, days_inactive=DEFAULT_DAYS_INACTIVE,
                 hour_utc=DEFAULT_HOUR_UTC, minute_utc=DEFAULT_MINUTE_UTC, clock=utcnow):
        self.store = store
        self.days_inactive = days_inactive
        self.hour_utc = hour_utc
        self.minute_utc = minute_utc
        self._clock = clock
        self._stop = threading.Event()
        self._thread = None

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, name="session-cleanup", daemon=True
        )
        self._thread.start()
        logger.info(
            "[Cleanup] Scheduled daily at %02d:%02d UTC (daysInactive=%s)",
            self.hour_utc,
            self.minute_utc,
            self.days_inactive,
        )

    def stop(self, timeout=5.0):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def seconds_until_next_run(self):
        now = self._clock()
        target = next_daily_run(now, self.hour_utc, self.minute_utc)
        return max((target - now).total_seconds(), 0.0)

    def run_once(self):
        """
        Evict with the configured window. Errors are logged, never raised,
        so the next day's run still happens.
        """
        try:
            result = self.store.evict(inactive_for_days=self.days_inactive)
        except Exception as e:
            logger.exception("[Cleanup] Scheduled cleanup failed: %s", e)
            return None

        logger.info(
            "[Cleanup] Scheduled cleanup removed %d sessions (cutoff=%d)",
            result.deleted_count,
            result.cutoff_timestamp,
        )
        return result

    def _loop(self):
        while not self._stop.wait(self.seconds_until_next_run()):
            self.run_once()
