"""
Trading engine: the single owner of simulation state.

Order book, position book, balance ledger, trade history and the price feed
all live here behind one re-entrant lock. Every command, tick and restore is
one transaction: preconditions are checked before anything is mutated, and
subscribers are only notified after the lock is released.

Execution model (all amounts integer cents):
    fill_price = current price (market) | limit price (limit)
    notional   = fill_price * size
    fee        = notional * fee_rate, half-up to whole cents
    buy        -> debit notional + fee   (InsufficientFunds -> cancel)
    sell       -> credit notional - fee  (needs a long >= size, else cancel)
"""

from __future__ import annotations

import logging
import random
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator

from config.sim_config import SimConfig
from execution import snapshot as snap
from execution.simulation import PriceSimulation
from sim_core.contracts import (
    BalanceSnapshot,
    Clock,
    EngineEvent,
    NewOrderRequest,
    Order,
    OrderKind,
    OrderSide,
    Position,
    PositionSide,
    PricePoint,
    Trade,
    utc_now,
)
from sim_core.errors import (
    InsufficientFunds,
    InsufficientPosition,
    InvalidOrder,
    TradingError,
)
from sim_core.ledger import BalanceLedger
from sim_core.order_book import OrderBook
from sim_core.position_book import PositionBook, realized_pnl
from sim_core.price_feed import PriceFeed
from sim_core.units import fee_for

logger = logging.getLogger("tradesim.engine")

Subscriber = Callable[[EngineEvent], None]


def _new_trade_id() -> str:
    return str(uuid.uuid4())


def _coerce(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise InvalidOrder(f"unknown order {label}: {value!r}") from None


@dataclass
class RestoreReport:
    orders: int = 0
    positions: int = 0
    trades: int = 0
    skipped: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.skipped


class TradingEngine:
    """Single-instrument simulated market. One instance per session."""

    def __init__(
        self,
        config: SimConfig | None = None,
        *,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        order_ids: Callable[[], str] | None = None,
        position_ids: Callable[[], str] | None = None,
        trade_ids: Callable[[], str] | None = None,
    ) -> None:
        self._config = config or SimConfig()
        self._clock = clock or utc_now
        self._order_ids = order_ids
        self._position_ids = position_ids
        self._new_trade_id = trade_ids or _new_trade_id
        self._fee_rate = self._config.fees.fee_rate
        self._symbol = self._config.symbol

        market = self._config.market
        self._feed = PriceFeed(
            market.initial_price,
            volatility=market.volatility,
            history_size=market.history_size,
            min_price=market.min_price,
            rng=rng or random.Random(market.seed),
            clock=self._clock,
        )
        self._feed.add_listener(self._on_price_changed)
        self._orders = OrderBook(clock=self._clock, id_factory=order_ids)
        self._positions = PositionBook(clock=self._clock, id_factory=position_ids)
        self._ledger = BalanceLedger(self._config.account.initial_cash)
        self._trades: list[Trade] = []

        self._lock = threading.RLock()
        self._depth = 0
        self._outbox: list[EngineEvent] = []
        self._subscribers: list[Subscriber] = []
        self._simulation = PriceSimulation(self.tick, market.tick_interval_ms)

    # ------------------------------------------------------------------
    # Transactions and events
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._lock:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
                events: list[EngineEvent] = []
                if self._depth == 0:
                    events, self._outbox = self._outbox, []
        for event in events:
            self._notify(event)

    def _emit(self, kind: str, **payload: Any) -> None:
        self._outbox.append(EngineEvent(kind=kind, payload=payload))

    def _notify(self, event: EngineEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Subscriber failed on %s event", event.kind)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a post-commit listener. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> SimConfig:
        return self._config

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def fee_rate(self) -> float:
        return self._fee_rate

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def place_order(
        self,
        symbol: str,
        kind: OrderKind | str,
        side: OrderSide | str,
        price: int | None,
        size: int,
    ) -> str:
        """Create a pending order; market orders execute immediately.

        *price* is the limit price in cents and is ignored for market orders.
        Returns the order id. Raises InvalidOrder if the order is rejected;
        an order that fails at execution time is cancelled, not raised.
        """
        kind = _coerce(OrderKind, kind, "kind")
        side = _coerce(OrderSide, side, "side")
        if symbol != self._symbol:
            raise InvalidOrder(f"unknown symbol {symbol!r}; this market trades {self._symbol}")
        request = NewOrderRequest(
            symbol=symbol,
            kind=kind,
            side=side,
            size=size,
            limit_price=price if kind is OrderKind.LIMIT else None,
        )
        with self._transaction():
            order_id = self._orders.place(request)
            order = self._orders.get(order_id)
            logger.info(
                "Order placed %s: %s %s %d %s%s",
                order_id, kind.value, side.value, size, symbol,
                f" @ {price}" if kind is OrderKind.LIMIT else "",
            )
            self._emit("order_placed", order=snap.order_to_dict(order))
            if kind is OrderKind.MARKET:
                self._execute(order, self._feed.current_price)
                self._mark_to_market()
        return order_id

    def cancel_order(self, order_id: str) -> Order:
        """pending -> cancelled. Raises NotFound or AlreadyTerminal."""
        with self._transaction():
            order = self._orders.cancel(order_id)
            logger.info("Order cancelled %s", order_id)
            self._emit("order_cancelled", order=snap.order_to_dict(order), reason=order.cancel_reason)
            return replace(order)

    def close_position(self, position_id: str) -> Trade:
        """Close the full position at the current price (market close).

        Raises NotFound for an unknown id, InsufficientFunds when covering a
        short costs more than the available cash. Nothing changes on failure.
        """
        with self._transaction():
            position = self._positions.get(position_id)
            price = self._feed.current_price
            notional = price * position.size
            fee = fee_for(notional, self._fee_rate)
            if position.side is PositionSide.LONG:
                self._ledger.credit(notional - fee)
                side = OrderSide.SELL
            else:
                if not self._ledger.can_debit(notional + fee):
                    raise InsufficientFunds(
                        f"covering {position.size} costs {notional + fee} cents, "
                        f"cash is {self._ledger.cash} cents"
                    )
                self._ledger.debit(notional + fee)
                side = OrderSide.BUY
            pnl = realized_pnl(position.side, position.entry_price, price, position.size)
            self._positions.close(position_id)
            self._ledger.record_realized(pnl)
            trade = self._record_trade(f"close_{position_id}", side, price, position.size, fee, pnl)
            self._mark_to_market()
            logger.info(
                "Position closed %s: %s %d @ %d, realized %d",
                position_id, position.side.value, position.size, price, pnl,
            )
            self._emit("position_closed", position_id=position_id, trade=snap.trade_to_dict(trade))
            return trade

    def tick(self) -> PricePoint:
        """Advance the price feed one step; matching runs on the new price."""
        with self._transaction():
            return self._feed.tick()

    def set_price(self, price: int) -> PricePoint:
        """Force the next tick to *price* (replay and tests)."""
        with self._transaction():
            return self._feed.set_price(price)

    def reset_account(self) -> None:
        """Drop orders, positions and trades; restore initial cash and price."""
        with self._transaction():
            self._orders.clear()
            self._positions.clear()
            self._trades.clear()
            self._ledger.reset(self._config.account.initial_cash)
            self._feed.reset(self._config.market.initial_price)
            logger.info("Account reset to %d cents", self._config.account.initial_cash)
            self._emit("account_reset", cash=self._ledger.cash)

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def _on_price_changed(self, point: PricePoint) -> None:
        # PriceFeed only ticks inside a transaction, so the lock is held here.
        for order in self._orders.list_pending(self._symbol):
            if order.kind is OrderKind.MARKET:
                self._execute(order, point.price)
            elif self._triggered(order, point.price):
                self._execute(order, order.limit_price)
        self._mark_to_market()
        self._emit("price_tick", price=point.price, timestamp=point.timestamp.isoformat())

    @staticmethod
    def _triggered(order: Order, price: int) -> bool:
        if order.side is OrderSide.BUY:
            return price <= order.limit_price
        return price >= order.limit_price

    def _check_fill(self, symbol: str, side: OrderSide, size: int, notional: int, fee: int) -> None:
        if side is OrderSide.BUY:
            short_size = self._positions.reducible_size(symbol, OrderSide.BUY)
            if short_size and size > short_size:
                raise InsufficientPosition(
                    f"buy of {size} exceeds short position of {short_size}"
                )
            if not self._ledger.can_debit(notional + fee):
                raise InsufficientFunds(
                    f"need {notional + fee} cents (notional {notional} + fee {fee}), "
                    f"have {self._ledger.cash}"
                )
        else:
            held = self._positions.reducible_size(symbol, OrderSide.SELL)
            if held < size:
                raise InsufficientPosition(f"sell of {size} exceeds long position of {held}")

    def _execute(self, order: Order, fill_price: int) -> Trade | None:
        notional = fill_price * order.size
        fee = fee_for(notional, self._fee_rate)
        try:
            self._check_fill(order.symbol, order.side, order.size, notional, fee)
        except (InsufficientFunds, InsufficientPosition) as exc:
            self._orders.mark_cancelled(order.id, str(exc))
            logger.info("Order %s cancelled at execution: %s", order.id, exc)
            self._emit("order_cancelled", order=snap.order_to_dict(order), reason=str(exc))
            return None

        if order.side is OrderSide.BUY:
            self._ledger.debit(notional + fee)
        else:
            self._ledger.credit(notional - fee)
        effect = self._positions.apply_fill(order.symbol, order.side, fill_price, order.size)
        if effect.realized_pnl:
            self._ledger.record_realized(effect.realized_pnl)
        trade = self._record_trade(order.id, order.side, fill_price, order.size, fee, effect.realized_pnl)
        self._orders.mark_filled(order.id, fill_price)
        logger.info(
            "Order filled %s: %s %d @ %d fee %d",
            order.id, order.side.value, order.size, fill_price, fee,
        )
        self._emit("order_filled", order=snap.order_to_dict(order), trade=snap.trade_to_dict(trade))
        return trade

    def _record_trade(
        self, order_id: str, side: OrderSide, price: int, size: int, fee: int, pnl: int
    ) -> Trade:
        trade = Trade(
            id=self._new_trade_id(),
            order_id=order_id,
            symbol=self._symbol,
            side=side,
            price=price,
            size=size,
            timestamp=self._clock(),
            fee=fee,
            realized_pnl=pnl,
        )
        self._trades.append(trade)
        return trade

    def _mark_to_market(self) -> None:
        total = self._positions.reprice_all(self._feed.current_price)
        self._ledger.refresh_total_pnl(total, self._positions.net_value())

    # ------------------------------------------------------------------
    # Queries (detached copies)
    # ------------------------------------------------------------------

    def get_pending_orders(self, symbol: str | None = None) -> list[Order]:
        with self._lock:
            return [replace(o) for o in self._orders.list_pending(symbol)]

    def get_order(self, order_id: str) -> Order:
        with self._lock:
            return replace(self._orders.get(order_id))

    def get_orders(self) -> list[Order]:
        with self._lock:
            return [replace(o) for o in self._orders.list_all()]

    def get_positions(self, symbol: str | None = None) -> list[Position]:
        with self._lock:
            return [replace(p) for p in self._positions.list_open(symbol)]

    def get_position(self, position_id: str) -> Position:
        with self._lock:
            return replace(self._positions.get(position_id))

    def get_trade_history(self) -> list[Trade]:
        with self._lock:
            return list(self._trades)

    def get_balance(self) -> BalanceSnapshot:
        with self._lock:
            return self._ledger.snapshot()

    def get_current_price(self) -> int:
        with self._lock:
            return self._feed.current_price

    def get_price_history(self) -> list[PricePoint]:
        with self._lock:
            return list(self._feed.history)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_price_simulation(self, interval_ms: int | None = None) -> bool:
        """Start the periodic ticker. Starting twice is a no-op (returns False)."""
        return self._simulation.start(interval_ms)

    def stop_price_simulation(self) -> bool:
        return self._simulation.stop()

    @property
    def is_simulating(self) -> bool:
        return self._simulation.is_running

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Full state as a flat JSON-compatible dict."""
        with self._lock:
            balance = self._ledger.snapshot()
            return snap.dump_state(
                symbol=self._symbol,
                current_price=self._feed.current_price,
                price_history=list(self._feed.history),
                orders=self._orders.list_all(),
                positions=self._positions.list_open(),
                trades=self._trades,
                cash=balance.cash,
                total_pnl=balance.total_pnl,
                realized_pnl=balance.realized_pnl,
            )

    def restore(self, payload: Any) -> RestoreReport:
        """Replace state from a snapshot payload.

        Bad records are skipped (see RestoreReport.skipped). New state is
        assembled off to the side and swapped in whole, so a payload that is
        rejected outright (SnapshotError) leaves the engine untouched.
        """
        with self._lock:
            fallback_price = self._feed.current_price
            fallback_symbol = self._symbol
        parsed = snap.parse_state(payload, fallback_price=fallback_price, fallback_symbol=fallback_symbol)
        report = RestoreReport(skipped=list(parsed.skipped))

        orders = OrderBook(clock=self._clock, id_factory=self._order_ids)
        for order in parsed.orders or []:
            try:
                orders.restore(order)
                report.orders += 1
            except TradingError as exc:
                report.skipped.append(f"order {order.id}: {exc}")
                logger.warning("Skipping order %s during restore: %s", order.id, exc)

        positions = PositionBook(clock=self._clock, id_factory=self._position_ids)
        for position in parsed.positions or []:
            try:
                positions.restore(position)
                report.positions += 1
            except TradingError as exc:
                report.skipped.append(f"position {position.id}: {exc}")
                logger.warning("Skipping position %s during restore: %s", position.id, exc)

        trades: list[Trade] = []
        seen: set[str] = set()
        for trade in parsed.trades or []:
            if trade.id in seen:
                report.skipped.append(f"trade {trade.id}: duplicate id")
                continue
            seen.add(trade.id)
            trades.append(trade)
        report.trades = len(trades)

        with self._transaction():
            if parsed.symbol:
                self._symbol = parsed.symbol
            if parsed.current_price is not None:
                self._feed.reset(parsed.current_price)
                if parsed.price_history:
                    self._feed.load_history(parsed.price_history)
            if parsed.orders is not None:
                self._orders = orders
            if parsed.positions is not None:
                self._positions = positions
            if parsed.trades is not None:
                self._trades = trades
            if parsed.cash is not None:
                self._ledger.restore(parsed.cash, parsed.realized_pnl)
            self._mark_to_market()
            logger.info(
                "State restored: %d order(s), %d position(s), %d trade(s), %d skipped",
                report.orders, report.positions, report.trades, len(report.skipped),
            )
            self._emit(
                "state_restored",
                orders=report.orders,
                positions=report.positions,
                trades=report.trades,
                skipped=len(report.skipped),
            )
        return report
