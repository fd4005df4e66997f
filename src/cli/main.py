"""
CLI entry point: tradesim status | place | cancel | close | orders |
positions | history | tick | run | reset | health.

Every command loads config from --config (default config.yaml), restores
the engine from the state store, prints dollar amounts, and journals any
trading event before saving state back.
"""

import json
import logging
import sys

import click
from dotenv import load_dotenv

from config import load_config
from config.loader import AppConfig
from sim_core.errors import TradingError

load_dotenv()

logger = logging.getLogger("tradesim.cli")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """tradesim: single-instrument paper trading simulator with a random-walk price feed."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- session helpers ----------


class _Session:
    """Engine restored from the state store, plus its observers."""

    def __init__(self, cfg: AppConfig) -> None:
        from config.sim_config import load_sim_config
        from data import StateStore
        from execution import TradingEngine

        self.cfg = cfg
        self.engine = TradingEngine(load_sim_config(cfg.engine_config, symbol=cfg.symbol))
        self.store = StateStore(cfg.state.path)
        payload = self.store.load_snapshot()
        if payload is not None:
            report = self.engine.restore(payload)
            for reason in report.skipped:
                click.echo(f"Warning: skipped stored record ({reason})", err=True)
        self.events = None

    def observe(self) -> "_Session":
        """Journal and (optionally) structured-log every engine event."""
        from cli.structured_log import StructuredEventLogger
        from journal import JournalWriter

        self.engine.subscribe(JournalWriter(self.cfg.journal.path, echo_stdout=self.cfg.journal.echo_stdout))
        self.events = StructuredEventLogger(
            self.engine.symbol,
            enabled=self.cfg.alerting.structured_logs,
            log_ticks=self.cfg.alerting.log_ticks,
            webhook_url=self.cfg.alerting.webhook_url,
        )
        self.engine.subscribe(self.events)
        return self

    def save(self) -> None:
        self.store.save_snapshot(self.engine.snapshot())


def _open_session(ctx: click.Context, *, observe: bool = False) -> _Session:
    from config.sim_config import SimConfigError

    try:
        cfg = load_config(ctx.obj["config_path"])
        session = _Session(cfg)
    except (FileNotFoundError, ValueError, SimConfigError, TradingError) as exc:
        raise click.ClickException(str(exc)) from exc
    return session.observe() if observe else session


def _fail(session: _Session, exc: TradingError) -> click.ClickException:
    if session.events is not None:
        session.events.order_rejected(str(exc))
    return click.ClickException(str(exc))


def _parse_dollars(value: str) -> int:
    from sim_core.units import dollars_to_cents

    try:
        return dollars_to_cents(value)
    except ArithmeticError:
        raise click.BadParameter(f"not a dollar amount: {value!r}", param_hint="--price") from None


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2))


# ---------- tradesim status ----------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON (dollars).")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show price, cash, P&L, equity and open positions."""
    from cli.output import format_status
    from execution.views import balance_view, position_view
    from sim_core.units import cents_to_dollars

    engine = _open_session(ctx).engine
    if as_json:
        _echo_json({
            "symbol": engine.symbol,
            "price": cents_to_dollars(engine.get_current_price()),
            "balance": balance_view(engine.get_balance()),
            "positions": [position_view(p) for p in engine.get_positions()],
        })
        return
    click.echo(format_status(engine.symbol, engine.get_current_price(), engine.get_balance(), engine.get_positions()))


# ---------- tradesim place ----------


@cli.command()
@click.argument("kind", type=click.Choice(["market", "limit"], case_sensitive=False))
@click.argument("side", type=click.Choice(["buy", "sell"], case_sensitive=False))
@click.argument("size", type=int)
@click.option("--price", "price_str", default=None, help="Limit price in dollars (required for limit orders).")
@click.pass_context
def place(ctx: click.Context, kind: str, side: str, size: int, price_str: str | None) -> None:
    """Place a market or limit order. Market orders fill at the current price."""
    from cli.output import format_order

    kind = kind.lower()
    if kind == "limit" and price_str is None:
        raise click.UsageError("limit orders need --price")
    price = _parse_dollars(price_str) if price_str is not None else None

    session = _open_session(ctx, observe=True)
    engine = session.engine
    try:
        order_id = engine.place_order(engine.symbol, kind, side.lower(), price, size)
    except TradingError as exc:
        raise _fail(session, exc) from exc
    session.save()
    click.echo(format_order(engine.get_order(order_id)).strip())


# ---------- tradesim cancel ----------


@cli.command()
@click.argument("order_id")
@click.pass_context
def cancel(ctx: click.Context, order_id: str) -> None:
    """Cancel a pending order."""
    session = _open_session(ctx, observe=True)
    try:
        session.engine.cancel_order(order_id)
    except TradingError as exc:
        raise _fail(session, exc) from exc
    session.save()
    click.echo(f"Order {order_id} cancelled.")


# ---------- tradesim close ----------


@cli.command()
@click.argument("position_id")
@click.pass_context
def close(ctx: click.Context, position_id: str) -> None:
    """Close an open position at the current price."""
    from sim_core.units import format_cents

    session = _open_session(ctx, observe=True)
    try:
        trade = session.engine.close_position(position_id)
    except TradingError as exc:
        raise _fail(session, exc) from exc
    session.save()
    click.echo(
        f"Position {position_id} closed: {trade.side.value} {trade.size} @ {format_cents(trade.price)}"
        f"  fee {format_cents(trade.fee)}  realized {format_cents(trade.realized_pnl)}"
    )


# ---------- tradesim orders / positions / history ----------


@cli.command()
@click.option("--all", "show_all", is_flag=True, default=False, help="Include filled and cancelled orders.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON (dollars).")
@click.pass_context
def orders(ctx: click.Context, show_all: bool, as_json: bool) -> None:
    """List pending orders (oldest first)."""
    from cli.output import format_orders
    from execution.views import order_view

    engine = _open_session(ctx).engine
    listed = engine.get_orders() if show_all else engine.get_pending_orders()
    if as_json:
        _echo_json([order_view(o) for o in listed])
    else:
        click.echo(format_orders(listed, title="Orders" if show_all else "Pending orders"))


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON (dollars).")
@click.pass_context
def positions(ctx: click.Context, as_json: bool) -> None:
    """List open positions with unrealized P&L."""
    from cli.output import format_positions
    from execution.views import position_view

    open_positions = _open_session(ctx).engine.get_positions()
    if as_json:
        _echo_json([position_view(p) for p in open_positions])
    else:
        click.echo(format_positions(open_positions))


@cli.command()
@click.option("--limit", default=10, help="Number of recent trades to show.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print machine-readable JSON (dollars).")
@click.pass_context
def history(ctx: click.Context, limit: int, as_json: bool) -> None:
    """Show the most recent trades."""
    from cli.output import format_trades
    from execution.views import trade_view

    trades = _open_session(ctx).engine.get_trade_history()
    if limit > 0:
        trades = trades[-limit:]
    if as_json:
        _echo_json([trade_view(t) for t in trades])
    else:
        click.echo(format_trades(trades))


# ---------- tradesim tick ----------


@cli.command()
@click.option("--count", default=1, help="Number of random-walk steps.")
@click.option("--price", "price_str", default=None, help="Set the next price (dollars) instead of a random step.")
@click.pass_context
def tick(ctx: click.Context, count: int, price_str: str | None) -> None:
    """Advance the price feed by hand; pending orders are matched on each step."""
    from cli.output import format_tick

    session = _open_session(ctx, observe=True)
    engine = session.engine
    previous = engine.get_current_price()
    if price_str is not None:
        points = [engine.set_price(_parse_dollars(price_str))]
    else:
        points = [engine.tick() for _ in range(max(count, 0))]
    session.save()
    for point in points:
        click.echo(format_tick(point, previous))
        previous = point.price


# ---------- tradesim run ----------


@cli.command()
@click.option("--ticks", default=None, type=int, help="Stop after N ticks (default: run until Ctrl+C).")
@click.option("--interval-ms", default=None, type=int, help="Tick interval in milliseconds (default from engine config).")
@click.pass_context
def run(ctx: click.Context, ticks: int | None, interval_ms: int | None) -> None:
    """Run the live price simulation, persisting and journaling every event."""
    from cli.output import format_status
    from cli.scheduler import run_live_loop
    from data import AutoSaver

    session = _open_session(ctx, observe=True)
    engine = session.engine
    saver = AutoSaver(engine, session.store).attach() if session.cfg.state.autosave else None
    session.events.simulation_start(interval_ms or engine.config.market.tick_interval_ms, engine.get_current_price())
    try:
        observed = run_live_loop(engine, ticks=ticks, interval_ms=interval_ms)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    finally:
        if saver is not None:
            saver.detach()
        session.save()
    session.events.shutdown(observed)
    click.echo(format_status(engine.symbol, engine.get_current_price(), engine.get_balance(), engine.get_positions()))


# ---------- tradesim reset ----------


@cli.command()
@click.confirmation_option(prompt="Reset the account and discard all saved state?")
@click.pass_context
def reset(ctx: click.Context) -> None:
    """Reset cash, orders, positions and trades; clear persisted state."""
    from sim_core.units import format_cents

    session = _open_session(ctx, observe=True)
    session.engine.reset_account()
    session.store.clear()
    click.echo(f"Account reset. Cash: {format_cents(session.engine.get_balance().cash)}")


# ---------- tradesim health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, engine config, state store.

    Exit code 0 = healthy, 1 = unhealthy.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (symbol={cfg.symbol})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        from config.sim_config import load_sim_config
        sim_cfg = load_sim_config(cfg.engine_config, symbol=cfg.symbol)
        checks.append(("engine_config", True, f"validated (fee_rate={sim_cfg.fees.fee_rate}, tick={sim_cfg.market.tick_interval_ms}ms)"))
    except Exception as e:
        checks.append(("engine_config", False, str(e)))

    try:
        from data import StateStore
        store = StateStore(cfg.state.path)
        keys = store.keys()
        detail = f"{len(keys)} key(s) in {store.path}" if keys else f"empty store at {store.path}"
        checks.append(("state_store", True, detail))
    except Exception as e:
        checks.append(("state_store", False, str(e)))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
