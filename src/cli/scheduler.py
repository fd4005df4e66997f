"""
Live simulation loop: start the engine's price ticker, echo each tick and
wait until N ticks have been observed or the user presses Ctrl+C.

The ticker runs on its own thread; this module only watches engine events
from the main thread and shuts the ticker down cleanly.
"""

from __future__ import annotations

import logging
import threading

import click

from cli.output import format_tick
from execution.engine import TradingEngine
from execution.snapshot import parse_timestamp
from sim_core.contracts import EngineEvent, PricePoint
from sim_core.units import format_cents

logger = logging.getLogger("tradesim.cli")

POLL_SECONDS = 0.25


class TickCounter:
    """Engine subscriber that counts price ticks and signals when *limit* is hit."""

    def __init__(self, limit: int | None = None, *, echo: bool = True) -> None:
        if limit is not None and limit < 1:
            raise ValueError(f"tick limit must be >= 1, got {limit}")
        self.limit = limit
        self.count = 0
        self.done = threading.Event()
        self._echo = echo
        self._last_price: int | None = None

    def __call__(self, event: EngineEvent) -> None:
        if event.kind == "price_tick":
            self.count += 1
            if self._echo:
                point = PricePoint(price=event.payload["price"], timestamp=parse_timestamp(event.payload["timestamp"]))
                click.echo(format_tick(point, self._last_price))
            self._last_price = event.payload["price"]
            if self.limit is not None and self.count >= self.limit:
                self.done.set()
        elif self._echo and event.kind == "order_filled":
            t = event.payload["trade"]
            click.echo(f"  Filled: {t['side']} {t['size']} {t['symbol']} @ {format_cents(t['price'])}")
        elif self._echo and event.kind == "order_cancelled":
            click.echo(f"  Cancelled: {event.payload['order']['id']} ({event.payload.get('reason') or 'user'})")


def run_live_loop(
    engine: TradingEngine,
    *,
    ticks: int | None = None,
    interval_ms: int | None = None,
    echo: bool = True,
) -> int:
    """
    Run the price simulation until *ticks* ticks (or Ctrl+C).

    Returns the number of ticks observed. The ticker is always stopped
    before returning.
    """
    interval = interval_ms if interval_ms is not None else engine.config.market.tick_interval_ms
    if interval <= 0:
        raise ValueError(f"tick interval must be > 0 ms, got {interval}")
    counter = TickCounter(ticks, echo=echo)
    unsubscribe = engine.subscribe(counter)

    click.echo(f"Price simulation started: {engine.symbol} every {interval} ms  |  Ctrl+C to stop\n")
    engine.start_price_simulation(interval)
    try:
        while not counter.done.wait(POLL_SECONDS):
            if not engine.is_simulating:
                logger.warning("Price simulation stopped unexpectedly")
                break
    except KeyboardInterrupt:
        click.echo("")
    finally:
        engine.stop_price_simulation()
        unsubscribe()

    click.echo(f"\nShutting down after {counter.count} tick(s). Goodbye.")
    return counter.count
