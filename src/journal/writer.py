"""
Structured journal: append-only JSON lines. One line per order, fill,
cancellation, position close or account reset. Amounts are integer cents.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from sim_core.contracts import EngineEvent


def _serialize(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "__dict__") and not isinstance(obj, type):
        return {k: _serialize(v) for k, v in vars(obj).items() if not k.startswith("_")}
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_serialize(x) for x in obj]
    return obj


class JournalWriter:
    """Append-only journal. Each line is a JSON object with event type and payload."""

    def __init__(self, path: str | Path, *, echo_stdout: bool = False) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._echo = echo_stdout

    def _write(self, event_type: str, payload: dict) -> None:
        record = {"ts_utc": datetime.now(timezone.utc).isoformat(), "event": event_type, **payload}
        line = json.dumps(_serialize(record)) + "\n"
        with open(self._path, "a") as f:
            f.write(line)
        if self._echo:
            print(line.rstrip())

    def order(self, order_id: str, symbol: str, kind: str, side: str, size: int, limit_price: int | None = None, **extra: Any) -> None:
        self._write(
            "order",
            {"order_id": order_id, "symbol": symbol, "kind": kind, "side": side, "size": size, "limit_price": limit_price, **extra},
        )

    def fill(self, order_id: str, symbol: str, side: str, size: int, price: int, fee: int, realized_pnl: int = 0, **extra: Any) -> None:
        self._write(
            "fill",
            {"order_id": order_id, "symbol": symbol, "side": side, "size": size, "price": price, "fee": fee, "realized_pnl": realized_pnl, **extra},
        )

    def cancel(self, order_id: str, reason: str, **extra: Any) -> None:
        self._write("cancel", {"order_id": order_id, "reason": reason, **extra})

    def close(self, position_id: str, symbol: str, side: str, size: int, price: int, fee: int, realized_pnl: int, **extra: Any) -> None:
        self._write(
            "close",
            {"position_id": position_id, "symbol": symbol, "side": side, "size": size, "price": price, "fee": fee, "realized_pnl": realized_pnl, **extra},
        )

    def reset(self, cash: int, **extra: Any) -> None:
        self._write("reset", {"cash": cash, **extra})

    def __call__(self, event: EngineEvent) -> None:
        """Engine subscriber: journal trading events, ignore price ticks."""
        p = event.payload
        if event.kind == "order_placed":
            o = p["order"]
            self.order(o["id"], o["symbol"], o["kind"], o["side"], o["size"], o["limit_price"])
        elif event.kind == "order_filled":
            t = p["trade"]
            self.fill(t["order_id"], t["symbol"], t["side"], t["size"], t["price"], t["fee"], t["realized_pnl"], trade_id=t["id"])
        elif event.kind == "order_cancelled":
            self.cancel(p["order"]["id"], p.get("reason") or "")
        elif event.kind == "position_closed":
            t = p["trade"]
            self.close(p["position_id"], t["symbol"], t["side"], t["size"], t["price"], t["fee"], t["realized_pnl"], trade_id=t["id"])
        elif event.kind == "account_reset":
            self.reset(p["cash"])
