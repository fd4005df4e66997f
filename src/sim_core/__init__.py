"""
sim-core: pure trading-simulation state machines.

No I/O, no threads, no network. Price feed, order book, position book and
balance ledger, all in integer cents. The matching engine that ties them
together (and owns locking) lives in execution.
"""

from sim_core.contracts import (
    BalanceSnapshot,
    EngineEvent,
    NewOrderRequest,
    Order,
    OrderKind,
    OrderSide,
    OrderStatus,
    Position,
    PositionSide,
    PricePoint,
    Trade,
)
from sim_core.errors import (
    AlreadyTerminal,
    InsufficientFunds,
    InsufficientPosition,
    InvalidOrder,
    NotFound,
    SnapshotError,
    TradingError,
)
from sim_core.ledger import BalanceLedger
from sim_core.order_book import OrderBook
from sim_core.position_book import PositionBook
from sim_core.price_feed import PriceFeed

__all__ = [
    "AlreadyTerminal",
    "BalanceLedger",
    "BalanceSnapshot",
    "EngineEvent",
    "InsufficientFunds",
    "InsufficientPosition",
    "InvalidOrder",
    "NewOrderRequest",
    "NotFound",
    "Order",
    "OrderBook",
    "OrderKind",
    "OrderSide",
    "OrderStatus",
    "Position",
    "PositionBook",
    "PositionSide",
    "PriceFeed",
    "PricePoint",
    "SnapshotError",
    "Trade",
    "TradingError",
]
