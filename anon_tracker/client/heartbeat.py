# anon_tracker/client/heartbeat.py

import logging
import threading

from anon_tracker.client.config import DEFAULT_HEARTBEAT_INTERVAL_MS

logger = logging.getLogger(__name__)


class HeartbeatScheduler:
    """
    Calls on_tick(identifier) once from start(), then every interval_ms on a
    single background thread until stop().

    Ticks never overlap: the next wait starts after the previous call returns.
    A failing tick is logged and skipped; the next tick is the retry.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._stop_event = None
        self._thread = None
        self.identifier = None
        self.interval_ms = None

    @property
    def running(self):
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self, identifier, interval_ms=DEFAULT_HEARTBEAT_INTERVAL_MS, on_tick=None):
        if on_tick is None:
            raise ValueError("on_tick is required")
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        with self._lock:
            self._stop_locked()

            # First tick runs in the caller, so the session exists once start() returns.
            self._tick(identifier, on_tick)

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(identifier, interval_ms / 1000.0, on_tick, stop_event),
                name=f"heartbeat-{identifier}",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            self.identifier = identifier
            self.interval_ms = interval_ms
            thread.start()

    def stop(self, timeout=None):
        """
        Cancel the schedule. No tick starts after this returns; a remote
        call already in flight is allowed to finish.
        """
        with self._lock:
            self._stop_locked(timeout)

    def _stop_locked(self, timeout=None):
        if self._stop_event is not None:
            self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._stop_event = None
        self._thread = None

    @staticmethod
    def _tick(identifier, on_tick):
        try:
            on_tick(identifier)
        except Exception as e:
            logger.warning("[Heartbeat] Tick for %s failed: %s", identifier, e)

    def _run(self, identifier, interval_seconds, on_tick, stop_event):
        while not stop_event.wait(interval_seconds):
            self._tick(identifier, on_tick)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
