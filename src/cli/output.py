"""
Human-readable account output for the terminal.

Every CLI command prints through these formatters. Amounts arrive in
integer cents and are shown in dollars.
"""

from __future__ import annotations

from sim_core.contracts import BalanceSnapshot, Order, Position, PricePoint, Trade
from sim_core.units import format_cents


def _fmt_price(cents: int | float | None) -> str:
    if cents is None:
        return "-"
    return format_cents(cents)


def format_status(symbol: str, price: int, balance: BalanceSnapshot, positions: list[Position]) -> str:
    """Format price, cash, P&L and open positions."""
    lines = [
        "=== Account Status ===",
        f"Symbol       : {symbol} @ {format_cents(price)}",
        f"Cash         : {format_cents(balance.cash)}",
        f"Unrealized   : {format_cents(balance.total_pnl)}",
        f"Realized     : {format_cents(balance.realized_pnl)}",
        f"Equity       : {format_cents(balance.equity)}",
    ]
    if positions:
        for p in positions:
            lines.append(
                f"Position     : {p.symbol} {p.side.value} {p.size} shares @ avg {_fmt_price(p.entry_price)}"
                f"  P&L {format_cents(p.pnl)}"
            )
    else:
        lines.append("Position     : flat (no open position)")
    lines.append("===")
    return "\n".join(lines)


def format_order(o: Order) -> str:
    price = f"limit {_fmt_price(o.limit_price)}" if o.limit_price is not None else "market"
    line = f"  {o.id}  {o.kind.value:6s} {o.side.value:4s} {o.size} {o.symbol} ({price})  {o.status.value}"
    if o.fill_price is not None:
        line += f" @ {format_cents(o.fill_price)}"
    if o.cancel_reason:
        line += f"  [{o.cancel_reason}]"
    return line


def format_orders(orders: list[Order], title: str = "Orders") -> str:
    if not orders:
        return f"No {title.lower()}."
    lines = [f"{title} ({len(orders)}):"]
    lines.extend(format_order(o) for o in orders)
    return "\n".join(lines)


def format_positions(positions: list[Position]) -> str:
    if not positions:
        return "No open positions."
    lines = [f"Open positions ({len(positions)}):"]
    for p in positions:
        lines.append(
            f"  {p.id}  {p.side.value:5s} {p.size} {p.symbol} @ avg {_fmt_price(p.entry_price)}"
            f"  now {format_cents(p.current_price)}  P&L {format_cents(p.pnl)}"
        )
    return "\n".join(lines)


def format_trade(t: Trade) -> str:
    line = (
        f"  {t.timestamp.isoformat()}  {t.side.value:4s} {t.size} {t.symbol} @ {format_cents(t.price)}"
        f"  fee {format_cents(t.fee)}"
    )
    if t.realized_pnl:
        line += f"  realized {format_cents(t.realized_pnl)}"
    return line


def format_trades(trades: list[Trade]) -> str:
    if not trades:
        return "No trades yet."
    lines = [f"Recent trades ({len(trades)}):"]
    lines.extend(format_trade(t) for t in trades)
    return "\n".join(lines)


def format_tick(point: PricePoint, previous: int | None = None) -> str:
    arrow = ""
    if previous is not None:
        arrow = " ^" if point.price > previous else (" v" if point.price < previous else " =")
    return f"[{point.timestamp:%H:%M:%S}] {format_cents(point.price)}{arrow}"
