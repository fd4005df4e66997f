"""Tests for the position book: merge, reduce, close, repricing."""

from datetime import datetime, timezone

import pytest

from conftest import id_sequence
from sim_core.contracts import OrderSide, Position, PositionSide
from sim_core.errors import InsufficientPosition, InvalidOrder, NotFound
from sim_core.position_book import PositionBook, realized_pnl, weighted_entry


@pytest.fixture
def book(clock) -> PositionBook:
    return PositionBook(clock=clock, id_factory=id_sequence("pos"))


def test_weighted_entry() -> None:
    assert weighted_entry(100, 10, 200, 10) == 150
    assert weighted_entry(100.0, 30, 200, 10) == 125


def test_realized_pnl_both_sides() -> None:
    assert realized_pnl(PositionSide.LONG, 100.0, 130, 10) == 300
    assert realized_pnl(PositionSide.SHORT, 100.0, 130, 10) == -300


class TestApplyFill:
    def test_buy_opens_long(self, book: PositionBook) -> None:
        effect = book.apply_fill("CSK", OrderSide.BUY, 3400, 10)
        assert effect.opened
        pos = book.get(effect.position_id)
        assert (pos.side, pos.size, pos.entry_price, pos.current_price) == (PositionSide.LONG, 10, 3400.0, 3400)

    def test_merge_averages_entry(self, book: PositionBook) -> None:
        first = book.apply_fill("CSK", OrderSide.BUY, 100, 10)
        second = book.apply_fill("CSK", OrderSide.BUY, 200, 10)
        assert second.position_id == first.position_id
        pos = book.get(first.position_id)
        assert pos.size == 20
        assert pos.entry_price == 150
        assert len(book) == 1

    def test_partial_reduce_realizes_pnl(self, book: PositionBook) -> None:
        opened = book.apply_fill("CSK", OrderSide.BUY, 100, 10)
        effect = book.apply_fill("CSK", OrderSide.SELL, 120, 4)
        assert effect.realized_pnl == 80
        assert not effect.closed
        pos = book.get(opened.position_id)
        assert pos.size == 6
        assert pos.entry_price == 100

    def test_full_reduce_removes_position(self, book: PositionBook) -> None:
        opened = book.apply_fill("CSK", OrderSide.BUY, 100, 10)
        effect = book.apply_fill("CSK", OrderSide.SELL, 90, 10)
        assert effect.closed
        assert effect.realized_pnl == -100
        with pytest.raises(NotFound):
            book.get(opened.position_id)

    def test_oversized_reduce_never_flips(self, book: PositionBook) -> None:
        opened = book.apply_fill("CSK", OrderSide.BUY, 100, 5)
        with pytest.raises(InsufficientPosition):
            book.apply_fill("CSK", OrderSide.SELL, 100, 6)
        assert book.get(opened.position_id).size == 5
        assert book.find("CSK", PositionSide.SHORT) is None

    def test_buy_covers_short(self, book: PositionBook) -> None:
        book.restore(_short(size=10, entry=200.0))
        effect = book.apply_fill("CSK", OrderSide.BUY, 150, 10)
        assert effect.closed
        assert effect.realized_pnl == 500

    def test_opposite_side_is_reduced_before_merging(self, book: PositionBook) -> None:
        long_fill = book.apply_fill("CSK", OrderSide.BUY, 100, 10)
        book.restore(_short(size=5, entry=120.0))
        effect = book.apply_fill("CSK", OrderSide.SELL, 110, 10)
        assert effect.closed
        assert effect.position_id == long_fill.position_id
        assert book.find("CSK", PositionSide.LONG) is None
        assert book.find("CSK", PositionSide.SHORT).size == 5

        book.apply_fill("CSK", OrderSide.BUY, 100, 2)
        assert book.find("CSK", PositionSide.SHORT).size == 3
        assert book.find("CSK", PositionSide.LONG) is None

    def test_bad_fill_rejected(self, book: PositionBook) -> None:
        with pytest.raises(InvalidOrder):
            book.apply_fill("CSK", OrderSide.BUY, 0, 1)
        with pytest.raises(InvalidOrder):
            book.apply_fill("CSK", OrderSide.BUY, 100, 0)


def _short(size: int, entry: float, pid: str = "short-1") -> Position:
    return Position(
        id=pid,
        symbol="CSK",
        side=PositionSide.SHORT,
        size=size,
        entry_price=entry,
        current_price=int(entry),
        opened_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class TestReprice:
    def test_total_pnl_and_idempotence(self, book: PositionBook) -> None:
        book.apply_fill("CSK", OrderSide.BUY, 100, 10)
        first = book.reprice_all(110)
        snapshot = [(p.id, p.current_price, p.pnl) for p in book.list_open()]
        second = book.reprice_all(110)
        assert first == second == 100
        assert [(p.id, p.current_price, p.pnl) for p in book.list_open()] == snapshot

    def test_net_value_long_minus_short(self, book: PositionBook) -> None:
        book.apply_fill("CSK", OrderSide.BUY, 100, 10)
        book.restore(_short(size=3, entry=120.0))
        book.reprice_all(100)
        assert book.net_value() == 1_000 - 300
        assert book.total_pnl() == 0 + 60


def test_reducible_size(book: PositionBook) -> None:
    assert book.reducible_size("CSK", OrderSide.SELL) == 0
    book.apply_fill("CSK", OrderSide.BUY, 100, 7)
    assert book.reducible_size("CSK", OrderSide.SELL) == 7
    assert book.reducible_size("CSK", OrderSide.BUY) == 0


def test_close_and_unknown(book: PositionBook) -> None:
    opened = book.apply_fill("CSK", OrderSide.BUY, 100, 1)
    closed = book.close(opened.position_id)
    assert closed.size == 1
    assert book.list_open() == []
    with pytest.raises(NotFound):
        book.close(opened.position_id)


def test_restore_rejects_duplicates(book: PositionBook) -> None:
    book.restore(_short(size=1, entry=100.0))
    with pytest.raises(InvalidOrder, match="duplicate"):
        book.restore(_short(size=1, entry=100.0))
    with pytest.raises(InvalidOrder, match="already exists"):
        book.restore(_short(size=1, entry=100.0, pid="short-2"))
