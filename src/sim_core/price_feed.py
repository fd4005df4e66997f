"""
Synthetic price feed: bounded random walk in integer cents.

    new = max(min_price, round(current * (1 + U))),  U ~ Uniform(-vol, +vol)

Pure and deterministic given a seeded ``random.Random`` and a clock. The
periodic scheduling lives in execution.simulation; this class only steps.
"""

from __future__ import annotations

import random
from collections import deque
from datetime import datetime
from typing import Callable

from sim_core.contracts import Clock, PricePoint, as_utc, utc_now

PriceListener = Callable[[PricePoint], None]


class PriceFeed:
    """Random-walk price source with an append-only, FIFO-bounded history."""

    def __init__(
        self,
        initial_price: int,
        *,
        volatility: float = 0.02,
        history_size: int = 100,
        min_price: int = 1,
        rng: random.Random | None = None,
        clock: Clock | None = None,
    ) -> None:
        if min_price < 1:
            raise ValueError(f"min_price must be >= 1 cent, got {min_price}")
        if volatility < 0:
            raise ValueError(f"volatility must be >= 0, got {volatility}")
        if history_size < 1:
            raise ValueError(f"history_size must be >= 1, got {history_size}")
        self._volatility = volatility
        self._min_price = min_price
        self._rng = rng or random.Random()
        self._clock = clock or utc_now
        self._history: deque[PricePoint] = deque(maxlen=history_size)
        self._listeners: list[PriceListener] = []
        self._current = max(min_price, int(initial_price))
        self._last_ts: datetime | None = None

    @property
    def current_price(self) -> int:
        return self._current

    @property
    def history(self) -> tuple[PricePoint, ...]:
        return tuple(self._history)

    @property
    def volatility(self) -> float:
        return self._volatility

    def add_listener(self, listener: PriceListener) -> None:
        self._listeners.append(listener)

    def next_price(self) -> int:
        """Draw the next price without committing it."""
        change = self._rng.uniform(-self._volatility, self._volatility)
        return max(self._min_price, round(self._current * (1 + change)))

    def tick(self) -> PricePoint:
        """Step the walk once, record it and notify listeners (PriceChanged)."""
        return self.set_price(self.next_price())

    def set_price(self, price: int, timestamp: datetime | None = None) -> PricePoint:
        point = PricePoint(price=max(self._min_price, int(price)), timestamp=self._stamp(timestamp))
        self._current = point.price
        self._history.append(point)
        for listener in list(self._listeners):
            listener(point)
        return point

    def reset(self, price: int) -> None:
        """Start over at *price* with an empty history. Does not notify listeners."""
        self._history.clear()
        self._current = max(self._min_price, int(price))
        self._last_ts = None

    def load_history(self, points: list[PricePoint]) -> None:
        """Replace history (restore path). Does not notify listeners."""
        self._history.clear()
        for p in points:
            self._history.append(p)
        if self._history:
            self._last_ts = self._history[-1].timestamp

    def _stamp(self, timestamp: datetime | None) -> datetime:
        # Timestamps never go backwards, even if the wall clock does.
        ts = as_utc(timestamp or self._clock())
        if self._last_ts is not None and ts < self._last_ts:
            ts = self._last_ts
        self._last_ts = ts
        return ts
