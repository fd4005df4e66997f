"""
Position book: at most one open position per (symbol, side).

Fill rules:
    buy  -> reduce short, else merge into long, else open long
    sell -> reduce long, else merge into short, else open short

Reductions larger than the position are rejected (InsufficientPosition);
a single fill never flips a position from long to short or back.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Callable

from sim_core.contracts import (
    Clock,
    FillEffect,
    OrderSide,
    Position,
    PositionSide,
    utc_now,
)
from sim_core.errors import InsufficientPosition, InvalidOrder, NotFound


def _new_position_id() -> str:
    return str(uuid.uuid4())


def weighted_entry(old_entry: float, old_size: int, price: int, size: int) -> float:
    """Size-weighted average entry: 10 @ 100 + 10 @ 200 -> 150."""
    return (old_entry * old_size + price * size) / (old_size + size)


def realized_pnl(side: PositionSide, entry_price: float, exit_price: int, size: int) -> int:
    if side is PositionSide.LONG:
        return round((exit_price - entry_price) * size)
    return round((entry_price - exit_price) * size)


_MERGE_SIDE = {OrderSide.BUY: PositionSide.LONG, OrderSide.SELL: PositionSide.SHORT}
_REDUCE_SIDE = {OrderSide.BUY: PositionSide.SHORT, OrderSide.SELL: PositionSide.LONG}


class PositionBook:
    def __init__(
        self,
        *,
        clock: Clock | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._clock = clock or utc_now
        self._new_id = id_factory or _new_position_id
        self._positions: dict[str, Position] = {}

    def __len__(self) -> int:
        return len(self._positions)

    def get(self, position_id: str) -> Position:
        try:
            return self._positions[position_id]
        except KeyError:
            raise NotFound(f"position not found: {position_id}") from None

    def find(self, symbol: str, side: PositionSide) -> Position | None:
        for p in self._positions.values():
            if p.symbol == symbol and p.side is side:
                return p
        return None

    def list_open(self, symbol: str | None = None) -> list[Position]:
        return [p for p in self._positions.values() if symbol is None or p.symbol == symbol]

    def reducible_size(self, symbol: str, side: OrderSide) -> int:
        """Size an order on *side* could reduce (0 when nothing to reduce)."""
        pos = self.find(symbol, _REDUCE_SIDE[side])
        return pos.size if pos else 0

    def apply_fill(self, symbol: str, side: OrderSide, price: int, size: int) -> FillEffect:
        if size <= 0:
            raise InvalidOrder(f"fill size must be > 0, got {size}")
        if price <= 0:
            raise InvalidOrder(f"fill price must be > 0, got {price}")

        # An opposite position is always reduced before anything merges.
        opposite = self.find(symbol, _REDUCE_SIDE[side])
        if opposite is not None:
            return self._reduce(opposite, price, size)

        merge_side = _MERGE_SIDE[side]
        existing = self.find(symbol, merge_side)
        if existing is not None:
            existing.entry_price = weighted_entry(existing.entry_price, existing.size, price, size)
            existing.size += size
            return FillEffect(position_id=existing.id)

        position = Position(
            id=self._new_id(),
            symbol=symbol,
            side=merge_side,
            size=size,
            entry_price=float(price),
            current_price=price,
            opened_at=self._clock(),
        )
        self._positions[position.id] = position
        return FillEffect(position_id=position.id, opened=True)

    def _reduce(self, position: Position, price: int, size: int) -> FillEffect:
        if size > position.size:
            raise InsufficientPosition(
                f"fill of {size} exceeds {position.side.value} position of {position.size}"
            )
        pnl = realized_pnl(position.side, position.entry_price, price, size)
        position.size -= size
        if position.size == 0:
            del self._positions[position.id]
            return FillEffect(position_id=position.id, realized_pnl=pnl, closed=True)
        return FillEffect(position_id=position.id, realized_pnl=pnl)

    def reprice_all(self, price: int) -> int:
        """Mark every position to *price*. Returns total unrealized P&L."""
        for p in self._positions.values():
            p.current_price = price
        return self.total_pnl()

    def total_pnl(self) -> int:
        return sum(p.pnl for p in self._positions.values())

    def net_value(self) -> int:
        """Long market value minus short cover cost."""
        total = 0
        for p in self._positions.values():
            total += p.market_value if p.side is PositionSide.LONG else -p.market_value
        return total

    def close(self, position_id: str) -> Position:
        position = self.get(position_id)
        del self._positions[position_id]
        return position

    def restore(self, position: Position) -> None:
        if position.size <= 0:
            raise InvalidOrder(f"position size must be > 0, got {position.size}")
        if position.id in self._positions:
            raise InvalidOrder(f"duplicate position id: {position.id}")
        if self.find(position.symbol, position.side) is not None:
            raise InvalidOrder(
                f"a {position.side.value} position for {position.symbol} already exists"
            )
        self._positions[position.id] = replace(position)

    def clear(self) -> None:
        self._positions.clear()
