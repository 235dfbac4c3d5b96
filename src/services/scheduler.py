import logging
import threading
from typing import Callable

logger = logging.getLogger("scheduler")


class RepeatingTimer(threading.Thread):
    """Calls ``fn`` every ``interval`` seconds until cancelled."""

    def __init__(self, interval: float, fn: Callable[[], None]):
        super().__init__(daemon=True)
        self.interval = interval
        self.fn = fn
        self._stopped = threading.Event()

    def run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.fn()
            except Exception as e:
                logger.exception(f"[RepeatingTimer] Callback failed: {e}")

    def cancel(self):
        self._stopped.set()


class TimerScheduler:
    """
    Thin wrapper over ``threading`` timers.

    Both methods return an object with ``cancel()``; the session lifecycle only
    relies on that, which lets tests swap in a manual scheduler.
    """

    def call_later(self, delay: float, fn: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        return timer

    def call_every(self, interval: float, fn: Callable[[], None]) -> RepeatingTimer:
        timer = RepeatingTimer(interval, fn)
        timer.start()
        return timer
