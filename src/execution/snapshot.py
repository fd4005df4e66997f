"""
Engine state <-> flat JSON-compatible dict.

Layout (version 1)::

    {"version": 1,
     "market":    {"symbol", "current_price", "price_history": [...]},
     "orderbook": {"orders": [...], "positions": [...], "trades": [...]},
     "balance":   {"cash", "total_pnl", "realized_pnl"}}

Restore is forgiving per record: every record is validated against a JSON
Schema and converted on its own; a bad record is skipped and reported, the
rest still load. Only a payload that is not a mapping (or has an unknown
version) is rejected as a whole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import jsonschema

from sim_core.contracts import (
    Order,
    OrderKind,
    OrderSide,
    OrderStatus,
    Position,
    PositionSide,
    PricePoint,
    Trade,
    as_utc,
)
from sim_core.errors import SnapshotError

logger = logging.getLogger("tradesim.snapshot")

SNAPSHOT_VERSION = 1

_TS = {"type": ["string", "number"]}
_ID = {"type": "string", "minLength": 1}
_CENTS = {"type": "integer", "minimum": 1}

ORDER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["id", "symbol", "kind", "side", "size", "status", "created_at"],
    "properties": {
        "id": _ID,
        "symbol": _ID,
        "kind": {"enum": [k.value for k in OrderKind]},
        "side": {"enum": [s.value for s in OrderSide]},
        "size": {"type": "integer", "minimum": 1},
        "status": {"enum": [s.value for s in OrderStatus]},
        "created_at": _TS,
        "updated_at": {"type": ["string", "number", "null"]},
        "limit_price": {"type": ["integer", "null"], "minimum": 1},
        "fill_price": {"type": ["integer", "null"], "minimum": 1},
        "cancel_reason": {"type": ["string", "null"]},
    },
}

POSITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["id", "symbol", "side", "size", "entry_price", "opened_at"],
    "properties": {
        "id": _ID,
        "symbol": _ID,
        "side": {"enum": [s.value for s in PositionSide]},
        "size": {"type": "integer", "minimum": 1},
        "entry_price": {"type": "number", "exclusiveMinimum": 0},
        "current_price": _CENTS,
        "opened_at": _TS,
    },
}

TRADE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["id", "order_id", "symbol", "side", "price", "size", "timestamp", "fee"],
    "properties": {
        "id": _ID,
        "order_id": _ID,
        "symbol": _ID,
        "side": {"enum": [s.value for s in OrderSide]},
        "price": _CENTS,
        "size": {"type": "integer", "minimum": 1},
        "timestamp": _TS,
        "fee": {"type": "integer", "minimum": 0},
        "realized_pnl": {"type": "integer"},
    },
}

PRICE_POINT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["price", "timestamp"],
    "properties": {"price": _CENTS, "timestamp": _TS},
}

MARKET_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["symbol", "current_price"],
    "properties": {"symbol": _ID, "current_price": _CENTS},
}

BALANCE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["cash"],
    "properties": {
        "cash": {"type": "integer", "minimum": 0},
        "realized_pnl": {"type": "integer"},
    },
}

_VALIDATORS = {
    name: jsonschema.Draft202012Validator(schema)
    for name, schema in {
        "order": ORDER_SCHEMA,
        "position": POSITION_SCHEMA,
        "trade": TRADE_SCHEMA,
        "price_point": PRICE_POINT_SCHEMA,
        "market": MARKET_SCHEMA,
        "balance": BALANCE_SCHEMA,
    }.items()
}


# ---------------------------------------------------------------------------
# Records -> dicts
# ---------------------------------------------------------------------------


def _iso(ts: datetime | None) -> str | None:
    return as_utc(ts).isoformat() if ts is not None else None


def order_to_dict(o: Order) -> dict[str, Any]:
    return {
        "id": o.id,
        "symbol": o.symbol,
        "kind": o.kind.value,
        "side": o.side.value,
        "size": o.size,
        "status": o.status.value,
        "created_at": _iso(o.created_at),
        "updated_at": _iso(o.updated_at),
        "limit_price": o.limit_price,
        "fill_price": o.fill_price,
        "cancel_reason": o.cancel_reason,
    }


def position_to_dict(p: Position) -> dict[str, Any]:
    return {
        "id": p.id,
        "symbol": p.symbol,
        "side": p.side.value,
        "size": p.size,
        "entry_price": p.entry_price,
        "current_price": p.current_price,
        "pnl": p.pnl,
        "opened_at": _iso(p.opened_at),
    }


def trade_to_dict(t: Trade) -> dict[str, Any]:
    return {
        "id": t.id,
        "order_id": t.order_id,
        "symbol": t.symbol,
        "side": t.side.value,
        "price": t.price,
        "size": t.size,
        "timestamp": _iso(t.timestamp),
        "fee": t.fee,
        "realized_pnl": t.realized_pnl,
    }


def point_to_dict(p: PricePoint) -> dict[str, Any]:
    return {"price": p.price, "timestamp": _iso(p.timestamp)}


def dump_state(
    *,
    symbol: str,
    current_price: int,
    price_history: list[PricePoint],
    orders: list[Order],
    positions: list[Position],
    trades: list[Trade],
    cash: int,
    total_pnl: int,
    realized_pnl: int,
) -> dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "market": {
            "symbol": symbol,
            "current_price": current_price,
            "price_history": [point_to_dict(p) for p in price_history],
        },
        "orderbook": {
            "orders": [order_to_dict(o) for o in orders],
            "positions": [position_to_dict(p) for p in positions],
            "trades": [trade_to_dict(t) for t in trades],
        },
        "balance": {
            "cash": cash,
            "total_pnl": total_pnl,
            "realized_pnl": realized_pnl,
        },
    }


# ---------------------------------------------------------------------------
# dicts -> records
# ---------------------------------------------------------------------------


def parse_timestamp(value: str | int | float) -> datetime:
    """ISO-8601 string, or epoch milliseconds as written by browser clients."""
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def order_from_dict(d: dict[str, Any]) -> Order:
    _VALIDATORS["order"].validate(d)
    kind = OrderKind(d["kind"])
    limit_price = d.get("limit_price")
    if kind is OrderKind.LIMIT and limit_price is None:
        raise ValueError("limit order without limit_price")
    updated_at = d.get("updated_at")
    return Order(
        id=d["id"],
        symbol=d["symbol"],
        kind=kind,
        side=OrderSide(d["side"]),
        size=int(d["size"]),
        status=OrderStatus(d["status"]),
        created_at=parse_timestamp(d["created_at"]),
        limit_price=int(limit_price) if kind is OrderKind.LIMIT else None,
        updated_at=parse_timestamp(updated_at) if updated_at is not None else None,
        fill_price=d.get("fill_price"),
        cancel_reason=d.get("cancel_reason"),
    )


def position_from_dict(d: dict[str, Any], current_price: int) -> Position:
    _VALIDATORS["position"].validate(d)
    return Position(
        id=d["id"],
        symbol=d["symbol"],
        side=PositionSide(d["side"]),
        size=int(d["size"]),
        entry_price=float(d["entry_price"]),
        current_price=current_price,
        opened_at=parse_timestamp(d["opened_at"]),
    )


def trade_from_dict(d: dict[str, Any]) -> Trade:
    _VALIDATORS["trade"].validate(d)
    return Trade(
        id=d["id"],
        order_id=d["order_id"],
        symbol=d["symbol"],
        side=OrderSide(d["side"]),
        price=int(d["price"]),
        size=int(d["size"]),
        timestamp=parse_timestamp(d["timestamp"]),
        fee=int(d["fee"]),
        realized_pnl=int(d.get("realized_pnl", 0)),
    )


def point_from_dict(d: dict[str, Any]) -> PricePoint:
    _VALIDATORS["price_point"].validate(d)
    return PricePoint(price=int(d["price"]), timestamp=parse_timestamp(d["timestamp"]))


@dataclass
class ParsedState:
    """Validated restore payload. ``None`` sections were absent or unusable."""

    symbol: str | None = None
    current_price: int | None = None
    price_history: list[PricePoint] | None = None
    orders: list[Order] | None = None
    positions: list[Position] | None = None
    trades: list[Trade] | None = None
    cash: int | None = None
    realized_pnl: int = 0
    skipped: list[str] = field(default_factory=list)


def _skip(parsed: ParsedState, label: str, exc: Exception) -> None:
    reason = exc.message if isinstance(exc, jsonschema.ValidationError) else str(exc)
    parsed.skipped.append(f"{label}: {reason}")
    logger.warning("Skipping %s during restore: %s", label, reason)


_RECORD_ERRORS = (
    jsonschema.ValidationError,
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
    OverflowError,
    OSError,
)


def _record_list(parsed: ParsedState, section: dict[str, Any], key: str) -> list | None:
    """The list stored under *key*: [] when absent, None (reported as skipped) when not a list."""
    value = section.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        _skip(parsed, key, ValueError(f"expected a list, got {type(value).__name__}"))
        return None
    return value


def parse_state(payload: Any, *, fallback_price: int, fallback_symbol: str) -> ParsedState:
    """Validate and convert a snapshot payload record by record."""
    if not isinstance(payload, dict):
        raise SnapshotError(f"snapshot must be a mapping, got {type(payload).__name__}")
    version = payload.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise SnapshotError(f"unsupported snapshot version: {version!r}")

    parsed = ParsedState()

    market = payload.get("market")
    if market is not None:
        try:
            _VALIDATORS["market"].validate(market)
            parsed.symbol = market["symbol"]
            parsed.current_price = int(market["current_price"])
        except _RECORD_ERRORS as exc:
            _skip(parsed, "market", exc)
        history = _record_list(parsed, market, "price_history") if isinstance(market, dict) else None
        if history is not None:
            parsed.price_history = []
            for i, raw in enumerate(history):
                try:
                    parsed.price_history.append(point_from_dict(raw))
                except _RECORD_ERRORS as exc:
                    _skip(parsed, f"price_history[{i}]", exc)

    symbol = parsed.symbol or fallback_symbol
    price = parsed.current_price or fallback_price

    book = payload.get("orderbook")
    if isinstance(book, dict):
        raw_orders = _record_list(parsed, book, "orders")
        if raw_orders is not None:
            parsed.orders = []
            for i, raw in enumerate(raw_orders):
                try:
                    order = order_from_dict(raw)
                except _RECORD_ERRORS as exc:
                    _skip(parsed, f"orders[{i}]", exc)
                    continue
                if order.symbol != symbol:
                    _skip(parsed, f"orders[{i}]", ValueError(f"symbol {order.symbol} is not {symbol}"))
                    continue
                parsed.orders.append(order)

        raw_positions = _record_list(parsed, book, "positions")
        if raw_positions is not None:
            parsed.positions = []
            for i, raw in enumerate(raw_positions):
                try:
                    position = position_from_dict(raw, price)
                except _RECORD_ERRORS as exc:
                    _skip(parsed, f"positions[{i}]", exc)
                    continue
                if position.symbol != symbol:
                    _skip(parsed, f"positions[{i}]", ValueError(f"symbol {position.symbol} is not {symbol}"))
                    continue
                parsed.positions.append(position)

        raw_trades = _record_list(parsed, book, "trades")
        if raw_trades is not None:
            parsed.trades = []
            for i, raw in enumerate(raw_trades):
                try:
                    parsed.trades.append(trade_from_dict(raw))
                except _RECORD_ERRORS as exc:
                    _skip(parsed, f"trades[{i}]", exc)
    elif book is not None:
        _skip(parsed, "orderbook", ValueError("orderbook must be a mapping"))

    balance = payload.get("balance")
    if balance is not None:
        try:
            _VALIDATORS["balance"].validate(balance)
            parsed.cash = int(balance["cash"])
            parsed.realized_pnl = int(balance.get("realized_pnl", 0))
        except _RECORD_ERRORS as exc:
            _skip(parsed, "balance", exc)

    return parsed
