"""
Order book: owns every order and its status transitions.

Only ``cancel`` is meant for external callers. ``mark_filled`` and
``mark_cancelled`` are driven by the matching engine. Terminal orders stay
in the book as history; ``list_pending`` is the matching loop's view.
"""

from __future__ import annotations

import itertools
import uuid
from dataclasses import replace
from typing import Callable

from sim_core.contracts import (
    Clock,
    NewOrderRequest,
    Order,
    OrderKind,
    OrderSide,
    OrderStatus,
    utc_now,
)
from sim_core.errors import AlreadyTerminal, InvalidOrder, NotFound


def _new_order_id() -> str:
    return str(uuid.uuid4())


def validate_request(request: NewOrderRequest) -> None:
    """Raise InvalidOrder for anything that must never enter the book."""
    if not isinstance(request.kind, OrderKind):
        raise InvalidOrder(f"unknown order kind: {request.kind!r}")
    if not isinstance(request.side, OrderSide):
        raise InvalidOrder(f"unknown order side: {request.side!r}")
    if isinstance(request.size, bool) or not isinstance(request.size, int):
        raise InvalidOrder(f"size must be a whole number of shares, got {request.size!r}")
    if request.size <= 0:
        raise InvalidOrder(f"size must be > 0, got {request.size}")
    if request.kind is OrderKind.LIMIT:
        price = request.limit_price
        if isinstance(price, bool) or not isinstance(price, int):
            raise InvalidOrder(f"limit price must be whole cents, got {price!r}")
        if price <= 0:
            raise InvalidOrder(f"limit price must be > 0, got {price}")
    if not request.symbol:
        raise InvalidOrder("symbol is required")


class OrderBook:
    """In-memory order store keyed by id, in creation order."""

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._clock = clock or utc_now
        self._new_id = id_factory or _new_order_id
        self._orders: dict[str, Order] = {}
        self._seq: dict[str, int] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._orders)

    def place(self, request: NewOrderRequest) -> str:
        validate_request(request)
        now = self._clock()
        order = Order(
            id=self._new_id(),
            symbol=request.symbol,
            kind=request.kind,
            side=request.side,
            size=request.size,
            status=OrderStatus.PENDING,
            created_at=now,
            limit_price=request.limit_price if request.kind is OrderKind.LIMIT else None,
            updated_at=now,
        )
        self._insert(order)
        return order.id

    def cancel(self, order_id: str) -> Order:
        """pending -> cancelled. Not idempotent: a second cancel raises AlreadyTerminal."""
        return self.mark_cancelled(order_id, "cancelled by user")

    def get(self, order_id: str) -> Order:
        try:
            return self._orders[order_id]
        except KeyError:
            raise NotFound(f"order not found: {order_id}") from None

    def list_pending(self, symbol: str | None = None) -> list[Order]:
        """Pending orders by ascending created_at; ties keep insertion order."""
        pending = [
            o for o in self._orders.values()
            if o.is_pending and (symbol is None or o.symbol == symbol)
        ]
        return sorted(pending, key=lambda o: (o.created_at, self._seq[o.id]))

    def list_all(self) -> list[Order]:
        return list(self._orders.values())

    # ---------- engine-only transitions ----------

    def mark_filled(self, order_id: str, fill_price: int) -> Order:
        order = self._pending(order_id)
        order.status = OrderStatus.FILLED
        order.fill_price = fill_price
        order.updated_at = self._clock()
        return order

    def mark_cancelled(self, order_id: str, reason: str) -> Order:
        order = self._pending(order_id)
        order.status = OrderStatus.CANCELLED
        order.cancel_reason = reason
        order.updated_at = self._clock()
        return order

    # ---------- restore ----------

    def restore(self, order: Order) -> None:
        """Re-insert a persisted order with its original identity.

        Filled and cancelled orders come back as history only; they never
        reach ``list_pending`` again.
        """
        if order.id in self._orders:
            raise InvalidOrder(f"duplicate order id: {order.id}")
        validate_request(
            NewOrderRequest(order.symbol, order.kind, order.side, order.size, order.limit_price)
        )
        self._insert(replace(order))

    def clear(self) -> None:
        self._orders.clear()
        self._seq.clear()

    def _insert(self, order: Order) -> None:
        self._orders[order.id] = order
        self._seq[order.id] = next(self._counter)

    def _pending(self, order_id: str) -> Order:
        order = self.get(order_id)
        if order.status.is_terminal:
            raise AlreadyTerminal(f"order {order_id} is already {order.status.value}")
        return order
