"""Cooldown throttle for probe and diagnostics endpoints."""
import threading
import time


class Cooldown:
    """Single-slot fixed window: at most one accepted call per window."""

    def __init__(self, window_seconds, clock=time.time):
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self.last_access_time = None

    def acquire(self):
        """Return (allowed, retry_after_seconds).

        A rejected call leaves ``last_access_time`` untouched, so the window
        is measured from the last accepted call.
        """
        now = self._clock()
        with self._lock:
            last = self.last_access_time
            if last is not None and now - last < self.window_seconds:
                return False, max(0, int(self.window_seconds - (now - last)) + 1)
            self.last_access_time = now
        return True, 0
