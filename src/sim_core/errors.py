"""Error taxonomy for the trading core.

Rejected commands raise one of these. Execution-time failures
(InsufficientFunds / InsufficientPosition) cancel the order instead of
propagating, except on explicit close_position where the caller sees them.
"""


class TradingError(Exception):
    """Base class for every recoverable trading failure."""


class InvalidOrder(TradingError):
    """Bad size / price / kind at submission. The order is never created."""


class InsufficientFunds(TradingError):
    """Cash does not cover notional + fee."""


class InsufficientPosition(TradingError):
    """No position, or a position too small for the requested reduction."""


class NotFound(TradingError):
    """Unknown order or position id."""


class AlreadyTerminal(TradingError):
    """Order is already filled or cancelled."""


class SnapshotError(TradingError):
    """Restore payload is unusable as a whole (not a mapping, wrong version)."""
