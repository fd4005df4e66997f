"""Tests for the trading engine: order execution, matching, fees, closing, events."""

import threading

import pytest

from execution.engine import TradingEngine
from sim_core.contracts import OrderKind, OrderSide, OrderStatus, PositionSide
from sim_core.errors import AlreadyTerminal, InsufficientFunds, InvalidOrder, NotFound


def _buy_market(engine: TradingEngine, size: int = 10) -> str:
    return engine.place_order("CSK", "market", "buy", None, size)


class TestMarketOrders:
    def test_buy_debits_notional_plus_fee(self, engine: TradingEngine) -> None:
        oid = _buy_market(engine)
        order = engine.get_order(oid)
        assert order.status is OrderStatus.FILLED
        assert order.fill_price == 3400
        assert engine.get_balance().cash == 100_000 - 34_340
        [pos] = engine.get_positions()
        assert (pos.side, pos.size, pos.entry_price) == (PositionSide.LONG, 10, 3400)
        [trade] = engine.get_trade_history()
        assert (trade.order_id, trade.price, trade.size, trade.fee) == (oid, 3400, 10, 340)

    def test_sell_credits_notional_minus_fee_and_realizes(self, engine: TradingEngine) -> None:
        _buy_market(engine)
        engine.set_price(3500)
        engine.place_order("CSK", OrderKind.MARKET, OrderSide.SELL, None, 10)
        balance = engine.get_balance()
        assert balance.cash == 65_660 + 35_000 - 350
        assert balance.realized_pnl == 1_000
        assert balance.total_pnl == 0
        assert engine.get_positions() == []
        assert engine.get_trade_history()[-1].realized_pnl == 1_000

    def test_oversell_is_cancelled_without_side_effects(self, engine: TradingEngine, events: list) -> None:
        oid = engine.place_order("CSK", "market", "sell", None, 5)
        order = engine.get_order(oid)
        assert order.status is OrderStatus.CANCELLED
        assert "exceeds long position" in order.cancel_reason
        assert engine.get_balance().cash == 100_000
        assert engine.get_positions() == []
        assert engine.get_trade_history() == []
        assert [e.kind for e in events] == ["order_placed", "order_cancelled"]

    def test_partial_sell_keeps_remainder(self, engine: TradingEngine) -> None:
        _buy_market(engine)
        engine.place_order("CSK", "market", "sell", None, 4)
        [pos] = engine.get_positions()
        assert pos.size == 6

    def test_insufficient_funds_is_cancelled(self, engine: TradingEngine) -> None:
        oid = _buy_market(engine, size=30)
        order = engine.get_order(oid)
        assert order.status is OrderStatus.CANCELLED
        assert "need" in order.cancel_reason
        assert engine.get_balance().cash == 100_000


class TestLimitOrders:
    def test_limit_buy_waits_for_price_at_or_below(self, engine: TradingEngine) -> None:
        oid = engine.place_order("CSK", "limit", "buy", 3300, 10)
        assert engine.get_order(oid).is_pending
        engine.set_price(3350)
        assert engine.get_order(oid).is_pending
        engine.set_price(3250)
        order = engine.get_order(oid)
        assert order.status is OrderStatus.FILLED
        assert order.fill_price == 3300
        assert engine.get_balance().cash == 100_000 - 33_000 - 330

    def test_limit_never_fills_at_submission(self, engine: TradingEngine) -> None:
        oid = engine.place_order("CSK", "limit", "buy", 5000, 1)
        assert engine.get_order(oid).is_pending
        assert engine.get_trade_history() == []

    def test_limit_sell_triggers_at_or_above(self, engine: TradingEngine) -> None:
        _buy_market(engine)
        oid = engine.place_order("CSK", "limit", "sell", 3500, 10)
        engine.set_price(3499)
        assert engine.get_order(oid).is_pending
        engine.set_price(3600)
        assert engine.get_order(oid).fill_price == 3500
        assert engine.get_balance().realized_pnl == 1_000

    def test_pending_orders_fill_oldest_first(self, engine: TradingEngine) -> None:
        first = engine.place_order("CSK", "limit", "buy", 3300, 20)
        second = engine.place_order("CSK", "limit", "buy", 3300, 20)
        assert [o.id for o in engine.get_pending_orders()] == [first, second]
        engine.set_price(3300)
        assert engine.get_order(first).status is OrderStatus.FILLED
        assert engine.get_order(second).status is OrderStatus.CANCELLED
        assert engine.get_balance().cash == 100_000 - 66_660

    def test_place_then_cancel_changes_nothing(self, engine: TradingEngine) -> None:
        before = engine.get_balance()
        oid = engine.place_order("CSK", "limit", "buy", 3300, 10)
        cancelled = engine.cancel_order(oid)
        assert cancelled.status is OrderStatus.CANCELLED
        assert engine.get_balance() == before
        assert engine.get_positions() == []
        engine.set_price(3000)
        assert engine.get_trade_history() == []
        with pytest.raises(AlreadyTerminal):
            engine.cancel_order(oid)


class TestValidation:
    def test_rejected_orders_never_enter_the_book(self, engine: TradingEngine) -> None:
        with pytest.raises(InvalidOrder):
            engine.place_order("CSK", "limit", "buy", None, 10)
        with pytest.raises(InvalidOrder):
            engine.place_order("CSK", "market", "buy", None, 0)
        with pytest.raises(InvalidOrder, match="kind"):
            engine.place_order("CSK", "stop", "buy", None, 1)
        with pytest.raises(InvalidOrder, match="side"):
            engine.place_order("CSK", "market", "hold", None, 1)
        assert engine.get_orders() == []

    def test_fractional_limit_price_is_rejected(self, engine: TradingEngine) -> None:
        with pytest.raises(InvalidOrder, match="whole cents"):
            engine.place_order("CSK", "limit", "buy", 3300.5, 1)
        good = engine.place_order("CSK", "limit", "buy", 3350, 1)
        engine.set_price(3200)
        assert engine.get_order(good).fill_price == 3350
        assert engine.get_orders()[0].id == good
        assert engine.get_balance().cash == 100_000 - 3_350 - 34

    def test_unknown_symbol(self, engine: TradingEngine) -> None:
        with pytest.raises(InvalidOrder, match="symbol"):
            engine.place_order("XYZ", "market", "buy", None, 1)

    def test_unknown_ids(self, engine: TradingEngine) -> None:
        with pytest.raises(NotFound):
            engine.cancel_order("missing")
        with pytest.raises(NotFound):
            engine.close_position("missing")


class TestClosePosition:
    def test_close_long_at_current_price(self, engine: TradingEngine, events: list) -> None:
        _buy_market(engine)
        engine.set_price(3600)
        [pos] = engine.get_positions()
        trade = engine.close_position(pos.id)
        assert trade.order_id == f"close_{pos.id}"
        assert (trade.side, trade.price, trade.size, trade.fee) == (OrderSide.SELL, 3600, 10, 360)
        assert trade.realized_pnl == 2_000
        balance = engine.get_balance()
        assert balance.cash == 65_660 + 36_000 - 360
        assert balance.realized_pnl == 2_000
        assert balance.total_pnl == 0
        assert engine.get_positions() == []
        assert events[-1].kind == "position_closed"

    def test_close_short_needs_cash(self, engine: TradingEngine) -> None:
        engine.restore({
            "version": 1,
            "orderbook": {
                "orders": [],
                "trades": [],
                "positions": [{
                    "id": "short-1", "symbol": "CSK", "side": "short", "size": 100,
                    "entry_price": 3000, "opened_at": "2024-01-01T00:00:00+00:00",
                }],
            },
            "balance": {"cash": 1_000},
        })
        with pytest.raises(InsufficientFunds):
            engine.close_position("short-1")
        assert engine.get_position("short-1").size == 100
        assert engine.get_balance().cash == 1_000


    def test_sell_reduces_long_when_short_also_held(self, engine: TradingEngine) -> None:
        engine.restore({
            "version": 1,
            "orderbook": {
                "orders": [],
                "trades": [],
                "positions": [
                    {"id": "long-1", "symbol": "CSK", "side": "long", "size": 10,
                     "entry_price": 3000, "opened_at": "2024-01-01T00:00:00+00:00"},
                    {"id": "short-1", "symbol": "CSK", "side": "short", "size": 5,
                     "entry_price": 3500, "opened_at": "2024-01-01T00:00:00+00:00"},
                ],
            },
            "balance": {"cash": 1_000},
        })
        engine.place_order("CSK", "market", "sell", None, 10)
        sizes = {p.side: p.size for p in engine.get_positions()}
        assert sizes == {PositionSide.SHORT: 5}
        assert engine.get_balance().cash == 1_000 + 34_000 - 340
        assert engine.get_balance().realized_pnl == 4_000


class TestMarkToMarket:
    def test_tick_reprices_positions_and_equity(self, engine: TradingEngine) -> None:
        _buy_market(engine)
        engine.set_price(3500)
        balance = engine.get_balance()
        assert balance.total_pnl == 1_000
        assert balance.equity == 65_660 + 35_000
        [pos] = engine.get_positions()
        assert pos.current_price == 3500
        assert pos.pnl == 1_000

    def test_tick_appends_history_and_emits(self, engine: TradingEngine, events: list) -> None:
        point = engine.tick()
        assert engine.get_current_price() == point.price
        assert engine.get_price_history() == [point]
        assert events[-1].kind == "price_tick"
        assert events[-1].payload["price"] == point.price


class TestQueriesAndEvents:
    def test_queries_return_copies(self, engine: TradingEngine) -> None:
        oid = engine.place_order("CSK", "limit", "buy", 3300, 10)
        engine.get_order(oid).size = 999
        engine.get_pending_orders()[0].status = OrderStatus.FILLED
        assert engine.get_order(oid).size == 10
        assert engine.get_order(oid).is_pending

    def test_failing_subscriber_does_not_break_engine(self, engine: TradingEngine, events: list) -> None:
        def broken(event) -> None:
            raise RuntimeError("subscriber down")

        engine.subscribe(broken)
        _buy_market(engine)
        assert engine.get_balance().cash == 65_660
        assert "order_filled" in [e.kind for e in events]

    def test_subscribers_run_outside_the_lock(self, engine: TradingEngine) -> None:
        prices: list[int] = []

        def read_from_other_thread(event) -> None:
            t = threading.Thread(target=lambda: prices.append(engine.get_current_price()))
            t.start()
            t.join(timeout=2)

        engine.subscribe(read_from_other_thread)
        engine.set_price(3456)
        assert prices == [3456]

    def test_unsubscribe(self, engine: TradingEngine) -> None:
        seen: list = []
        unsubscribe = engine.subscribe(seen.append)
        unsubscribe()
        engine.tick()
        assert seen == []

    def test_reset_account(self, engine: TradingEngine, events: list) -> None:
        _buy_market(engine)
        engine.place_order("CSK", "limit", "buy", 3000, 1)
        engine.set_price(3100)
        engine.reset_account()
        assert engine.get_orders() == []
        assert engine.get_positions() == []
        assert engine.get_trade_history() == []
        assert engine.get_price_history() == []
        assert engine.get_current_price() == 3400
        assert engine.get_balance().cash == 100_000
        assert events[-1].kind == "account_reset"


def test_background_simulation_ticks_engine(engine: TradingEngine) -> None:
    ticked = threading.Event()
    engine.subscribe(lambda e: ticked.set() if e.kind == "price_tick" else None)
    assert engine.start_price_simulation(5) is True
    assert engine.start_price_simulation(5) is False
    assert ticked.wait(5)
    assert engine.is_simulating
    assert engine.stop_price_simulation() is True
    assert not engine.is_simulating
    assert len(engine.get_price_history()) >= 1


def test_commands_interleaved_with_background_ticks_stay_consistent(engine: TradingEngine) -> None:
    """Cash and position size must reconcile with the trade history after racing the ticker."""
    assert engine.start_price_simulation(1)
    try:
        for i in range(200):
            engine.place_order("CSK", "market", "buy", None, 1)
            oid = engine.place_order("CSK", "limit", "buy", engine.get_current_price(), 1)
            try:
                engine.cancel_order(oid)
            except AlreadyTerminal:
                pass
            if i % 3 == 0:
                engine.place_order("CSK", "market", "sell", None, 2)
    finally:
        engine.stop_price_simulation()

    trades = engine.get_trade_history()
    cash = 100_000
    held = 0
    for t in trades:
        if t.side is OrderSide.BUY:
            cash -= t.notional + t.fee
            held += t.size
        else:
            cash += t.notional - t.fee
            held -= t.size
    balance = engine.get_balance()
    assert balance.cash == cash
    assert balance.cash >= 0
    assert balance.realized_pnl == sum(t.realized_pnl for t in trades)
    assert sum(p.size for p in engine.get_positions()) == held
    assert engine.get_pending_orders() == []
    assert all(o.status.is_terminal for o in engine.get_orders())
