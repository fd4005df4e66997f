"""
Periodic price ticker: a cancellable background thread that posts ticks
into the engine.

start() is idempotent (a running ticker is left alone). stop() sets the
stop event and joins the thread, so once it returns no further tick runs.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("tradesim.simulation")

DEFAULT_INTERVAL_MS = 2000


class PriceSimulation:
    def __init__(
        self,
        on_tick: Callable[[], object],
        interval_ms: int = DEFAULT_INTERVAL_MS,
        *,
        name: str = "price-simulation",
    ) -> None:
        self._on_tick = on_tick
        self._interval_ms = self._check_interval(interval_ms)
        self._name = name
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self.ticks = 0

    @staticmethod
    def _check_interval(interval_ms: int) -> int:
        if interval_ms <= 0:
            raise ValueError(f"tick interval must be > 0 ms, got {interval_ms}")
        return int(interval_ms)

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self, interval_ms: int | None = None) -> bool:
        """Start ticking. Returns False (and changes nothing) if already running."""
        with self._lock:
            if self._thread and self._thread.is_alive():
                return False
            if interval_ms is not None:
                self._interval_ms = self._check_interval(interval_ms)
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._run,
                args=(stop_event, self._interval_ms / 1000),
                daemon=True,
                name=self._name,
            )
            self._thread.start()
        logger.info("Price simulation started (every %d ms)", self._interval_ms)
        return True

    def stop(self, timeout: float = 5.0) -> bool:
        """Cancel the ticker. Returns False if it was not running."""
        with self._lock:
            thread, self._thread = self._thread, None
            stop_event, self._stop_event = self._stop_event, None
        if stop_event is not None:
            stop_event.set()
        if thread is None:
            return False
        if thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("Price simulation stopped after %d tick(s)", self.ticks)
        return True

    def _run(self, stop_event: threading.Event, interval_s: float) -> None:
        while not stop_event.wait(interval_s):
            try:
                self._on_tick()
            except Exception:
                logger.exception("Price tick failed")
                continue
            self.ticks += 1
