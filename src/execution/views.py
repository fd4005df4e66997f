"""
Dollar views of engine records for display layers.

The engine never leaves integer cents; these helpers are the one place
where cents become dollars for the outside world.
"""

from __future__ import annotations

from typing import Any

from sim_core.contracts import BalanceSnapshot, Order, Position, Trade
from sim_core.units import cents_to_dollars


def order_view(o: Order) -> dict[str, Any]:
    return {
        "id": o.id,
        "symbol": o.symbol,
        "kind": o.kind.value,
        "side": o.side.value,
        "size": o.size,
        "status": o.status.value,
        "limit_price": cents_to_dollars(o.limit_price) if o.limit_price is not None else None,
        "fill_price": cents_to_dollars(o.fill_price) if o.fill_price is not None else None,
        "created_at": o.created_at.isoformat(),
    }


def position_view(p: Position) -> dict[str, Any]:
    return {
        "id": p.id,
        "symbol": p.symbol,
        "side": p.side.value,
        "size": p.size,
        "entry_price": round(cents_to_dollars(p.entry_price), 4),
        "current_price": cents_to_dollars(p.current_price),
        "pnl": cents_to_dollars(p.pnl),
    }


def trade_view(t: Trade) -> dict[str, Any]:
    return {
        "id": t.id,
        "order_id": t.order_id,
        "symbol": t.symbol,
        "side": t.side.value,
        "price": cents_to_dollars(t.price),
        "size": t.size,
        "fee": cents_to_dollars(t.fee),
        "realized_pnl": cents_to_dollars(t.realized_pnl),
        "timestamp": t.timestamp.isoformat(),
    }


def balance_view(b: BalanceSnapshot) -> dict[str, float]:
    return {
        "cash": cents_to_dollars(b.cash),
        "total_pnl": cents_to_dollars(b.total_pnl),
        "realized_pnl": cents_to_dollars(b.realized_pnl),
        "equity": cents_to_dollars(b.equity),
    }
