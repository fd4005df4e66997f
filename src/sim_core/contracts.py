"""
Data contracts for sim-core: PricePoint, Order, Position, Trade, BalanceSnapshot.

All money fields are integer cents (see sim_core.units). Sizes are integer
share counts. No I/O; these are plain dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OrderKind(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, Enum):
    """pending -> filled | cancelled. Both terminal states are final."""

    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class PositionSide(str, Enum):
    LONG = "long"
    SHORT = "short"


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PricePoint:
    price: int
    timestamp: datetime


@dataclass(frozen=True)
class NewOrderRequest:
    """Caller-supplied order fields. limit_price is ignored for market orders."""

    symbol: str
    kind: OrderKind
    side: OrderSide
    size: int
    limit_price: int | None = None


@dataclass
class Order:
    id: str
    symbol: str
    kind: OrderKind
    side: OrderSide
    size: int
    status: OrderStatus
    created_at: datetime
    limit_price: int | None = None
    updated_at: datetime | None = None
    fill_price: int | None = None
    cancel_reason: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is OrderStatus.PENDING


@dataclass
class Position:
    """Open position. pnl is derived from entry/current price and size."""

    id: str
    symbol: str
    side: PositionSide
    size: int
    entry_price: float
    current_price: int
    opened_at: datetime

    @property
    def pnl(self) -> int:
        if self.side is PositionSide.LONG:
            diff = self.current_price - self.entry_price
        else:
            diff = self.entry_price - self.current_price
        return round(diff * self.size)

    @property
    def market_value(self) -> int:
        return self.current_price * self.size


@dataclass(frozen=True)
class Trade:
    """Immutable history record for one fill or explicit close."""

    id: str
    order_id: str
    symbol: str
    side: OrderSide
    price: int
    size: int
    timestamp: datetime
    fee: int
    realized_pnl: int = 0

    @property
    def notional(self) -> int:
        return self.price * self.size


@dataclass(frozen=True)
class FillEffect:
    """What PositionBook.apply_fill did to the book."""

    position_id: str
    realized_pnl: int = 0
    closed: bool = False
    opened: bool = False


@dataclass(frozen=True)
class BalanceSnapshot:
    cash: int
    total_pnl: int = 0
    realized_pnl: int = 0
    positions_value: int = 0

    @property
    def equity(self) -> int:
        """Cash plus the net liquidation value of open positions."""
        return self.cash + self.positions_value


@dataclass(frozen=True)
class EngineEvent:
    """Notification delivered to subscribers after a committed mutation."""

    kind: str
    payload: dict = field(default_factory=dict)
