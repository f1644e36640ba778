"""
Debounced task scheduling.

A Debouncer owns at most one pending timer per key. Scheduling a key that
already has a pending timer cancels it and starts a new one, so a burst of
calls collapses into a single run after the quiet period.
"""

import logging
import threading
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Per-key cancellable delayed tasks.

    Timers are daemon threads, so a pending task never keeps the process
    alive; callers that need durability flush explicitly before exit.
    """

    def __init__(self, delay_ms: int = 500):
        self.delay = max(0, delay_ms) / 1000.0
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, key: str, fn: Callable[[], None]) -> None:
        """Run ``fn`` after the delay unless ``key`` is rescheduled first."""
        with self._lock:
            existing = self._timers.pop(key, None)
            if existing is not None:
                existing.cancel()

            timer = threading.Timer(self.delay, self._fire, args=(key, fn))
            timer.daemon = True
            self._timers[key] = timer
            timer.start()

    def _fire(self, key: str, fn: Callable[[], None]) -> None:
        with self._lock:
            current = self._timers.get(key)
            if current is not threading.current_thread():
                # Superseded between timer expiry and lock acquisition
                return
            del self._timers[key]
        try:
            fn()
        except Exception as e:
            logger.error(f"Debounced task for '{key}' failed: {e}", exc_info=True)

    def cancel(self, key: str) -> bool:
        """Cancel the pending task for ``key``. Returns True if one was pending."""
        with self._lock:
            timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> int:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        return len(timers)

    def is_pending(self, key: str) -> bool:
        with self._lock:
            return key in self._timers

    def pending_keys(self):
        with self._lock:
            return sorted(self._timers)
