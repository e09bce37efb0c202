"""
Debounced scheduling of recognition passes.

Every input event restarts a countdown; the pass runs once the input has
been quiet for ``delay_ms``. Only one pass runs at a time. A trigger that
arrives while a pass is running is either remembered and run once the
current pass finishes (``policy="queue"``) or discarded (``policy="drop"``).
Passes are also spaced at least ``min_interval_ms`` apart; a trigger that
comes too early is postponed, not lost.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional

from .config import SchedulerConfig
from .logger import get_logger

logger = get_logger(__name__)


class RecognitionScheduler:
    def __init__(
        self,
        pass_fn: Callable[[], Any],
        config: Optional[SchedulerConfig] = None,
        on_result: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> None:
        self.pass_fn = pass_fn
        self.config = config or SchedulerConfig()
        self.on_result = on_result
        self.on_error = on_error

        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._running = False
        self._rerun = False
        self._closed = False
        self._last_run: Optional[float] = None
        self.pass_count = 0
        self.last_result: Any = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def notify_input(self) -> None:
        """Record an input event and (re)start the debounce countdown."""
        with self._lock:
            if self._closed:
                return
            self._arm(self.config.delay_ms / 1000.0)

    def cancel(self) -> None:
        """Drop the pending countdown and any queued re-run."""
        with self._lock:
            self._disarm()
            self._rerun = False

    def flush(self) -> Any:
        """Run a pass now on the calling thread; returns its result or None."""
        with self._lock:
            self._disarm()
            if not self._claim():
                return None
        return self._execute()

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            self._disarm()
            self._rerun = False

    # -- internals (``_arm``, ``_disarm`` and ``_claim`` need the lock) ---
    def _arm(self, delay: float) -> None:
        self._disarm()
        timer = threading.Timer(delay, self._on_timer)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _claim(self) -> bool:
        if self._running:
            if self.config.policy == "queue":
                self._rerun = True
                logger.debug("Pass in flight; queued a re-run")
            else:
                logger.debug("Pass in flight; trigger dropped")
            return False
        self._running = True
        return True

    def _on_timer(self) -> None:
        with self._lock:
            if threading.current_thread() is not self._timer:
                return
            self._timer = None
            if self._closed:
                return
            wait = self._throttle_wait()
            if wait > 0:
                self._arm(wait)
                return
            if not self._claim():
                return
        self._execute()

    def _throttle_wait(self) -> float:
        if self._last_run is None:
            return 0.0
        elapsed = time.monotonic() - self._last_run
        return max(0.0, self.config.min_interval_ms / 1000.0 - elapsed)

    def _execute(self) -> Any:
        result = None
        while True:
            try:
                result = self.pass_fn()
                self.last_result = result
            except Exception as exc:
                logger.error(f"Recognition pass failed: {exc}")
                self._notify(self.on_error, exc)
            else:
                self._notify(self.on_result, result)
            with self._lock:
                self.pass_count += 1
                self._last_run = time.monotonic()
                if self._rerun and not self._closed:
                    self._rerun = False
                    continue
                self._running = False
                return result

    def _notify(self, callback: Optional[Callable[[Any], None]], value: Any) -> None:
        if callback is None:
            return
        try:
            callback(value)
        except Exception:
            logger.exception("Scheduler callback raised")
