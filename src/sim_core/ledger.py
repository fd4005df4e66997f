"""Balance ledger: cash in integer cents plus aggregate P&L."""

from __future__ import annotations

from sim_core.contracts import BalanceSnapshot
from sim_core.errors import InsufficientFunds


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be integer cents, got {amount!r}")
    if amount < 0:
        raise ValueError(f"amount must be >= 0, got {amount}")
    return amount


class BalanceLedger:
    """
    Single-account cash ledger.

    Debits never clamp: a debit larger than the balance raises
    InsufficientFunds and leaves cash untouched, so cash is always >= 0.
    """

    def __init__(self, cash: int = 0) -> None:
        self._cash = _check_amount(cash)
        self._total_pnl = 0
        self._realized_pnl = 0
        self._positions_value = 0

    @property
    def cash(self) -> int:
        return self._cash

    @property
    def total_pnl(self) -> int:
        return self._total_pnl

    @property
    def realized_pnl(self) -> int:
        return self._realized_pnl

    def can_debit(self, amount: int) -> bool:
        return _check_amount(amount) <= self._cash

    def credit(self, amount: int) -> int:
        self._cash += _check_amount(amount)
        return self._cash

    def debit(self, amount: int) -> int:
        if not self.can_debit(amount):
            raise InsufficientFunds(
                f"debit of {amount} cents exceeds balance of {self._cash} cents"
            )
        self._cash -= amount
        return self._cash

    def refresh_total_pnl(self, total_pnl: int, positions_value: int = 0) -> None:
        self._total_pnl = int(total_pnl)
        self._positions_value = int(positions_value)

    def record_realized(self, amount: int) -> None:
        self._realized_pnl += int(amount)

    def reset(self, cash: int) -> None:
        self._cash = _check_amount(cash)
        self._total_pnl = 0
        self._realized_pnl = 0
        self._positions_value = 0

    def restore(self, cash: int, realized_pnl: int = 0) -> None:
        self._cash = _check_amount(cash)
        self._realized_pnl = int(realized_pnl)

    def snapshot(self) -> BalanceSnapshot:
        return BalanceSnapshot(
            cash=self._cash,
            total_pnl=self._total_pnl,
            realized_pnl=self._realized_pnl,
            positions_value=self._positions_value,
        )
