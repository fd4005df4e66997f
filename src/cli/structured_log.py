"""
Structured JSON event logger for container observability.

Emits one JSON object per line to stderr. Events are designed to be
parsed by log aggregators (Grafana Loki, CloudWatch, ELK).

Optional webhook: when configured, trade-level events (order_filled,
order_cancelled, position_closed, error) are POSTed to the URL.
"""

from __future__ import annotations

import json
import logging
import sys
import urllib.request
from datetime import datetime, timezone
from typing import Any

from sim_core.contracts import EngineEvent

logger = logging.getLogger("tradesim.events")


class StructuredEventLogger:
    """Emit structured JSON events to stderr and optional webhook."""

    def __init__(
        self,
        symbol: str,
        *,
        enabled: bool = True,
        log_ticks: bool = False,
        webhook_url: str = "",
        stream: Any = None,
    ) -> None:
        self._symbol = symbol
        self._enabled = enabled
        self._log_ticks = log_ticks
        self._webhook_url = webhook_url.strip()
        self._stream = stream or sys.stderr
        self._ALERT_EVENTS = {
            "order_filled",
            "order_cancelled",
            "position_closed",
            "error",
        }

    def _emit(self, event_type: str, **fields: Any) -> dict:
        record = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            "symbol": self._symbol,
            **fields,
        }
        if self._enabled:
            self._stream.write(json.dumps(record) + "\n")
            self._stream.flush()

        if self._webhook_url and event_type in self._ALERT_EVENTS:
            self._post_webhook(record)

        return record

    def _post_webhook(self, record: dict) -> None:
        try:
            data = json.dumps(record).encode("utf-8")
            req = urllib.request.Request(
                self._webhook_url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )
            urllib.request.urlopen(req, timeout=5)
        except Exception as exc:
            logger.warning("Webhook POST failed: %s", exc)

    def simulation_start(self, interval_ms: int, price: int) -> dict:
        return self._emit("simulation_start", interval_ms=interval_ms, price=price)

    def price_tick(self, price: int) -> dict | None:
        if not self._log_ticks:
            return None
        return self._emit("price_tick", price=price)

    def order_placed(self, order_id: str, kind: str, side: str, size: int, limit_price: int | None) -> dict:
        return self._emit(
            "order_placed",
            order_id=order_id,
            kind=kind,
            side=side,
            size=size,
            limit_price=limit_price,
        )

    def order_filled(self, order_id: str, side: str, size: int, price: int, fee: int) -> dict:
        return self._emit(
            "order_filled",
            order_id=order_id,
            side=side,
            size=size,
            price=price,
            fee=fee,
        )

    def order_cancelled(self, order_id: str, reason: str) -> dict:
        return self._emit("order_cancelled", order_id=order_id, reason=reason)

    def order_rejected(self, reason: str) -> dict:
        return self._emit("order_rejected", reason=reason)

    def position_closed(self, position_id: str, size: int, price: int, realized_pnl: int) -> dict:
        return self._emit(
            "position_closed",
            position_id=position_id,
            size=size,
            price=price,
            realized_pnl=realized_pnl,
        )

    def error(self, message: str, detail: str = "") -> dict:
        return self._emit("error", message=message, detail=detail)

    def shutdown(self, ticks: int) -> dict:
        return self._emit("shutdown", ticks=ticks)

    def __call__(self, event: EngineEvent) -> None:
        """Engine subscriber: translate engine events to log records."""
        p = event.payload
        if event.kind == "price_tick":
            self.price_tick(p["price"])
        elif event.kind == "order_placed":
            o = p["order"]
            self.order_placed(o["id"], o["kind"], o["side"], o["size"], o["limit_price"])
        elif event.kind == "order_filled":
            t = p["trade"]
            self.order_filled(t["order_id"], t["side"], t["size"], t["price"], t["fee"])
        elif event.kind == "order_cancelled":
            self.order_cancelled(p["order"]["id"], p.get("reason") or "")
        elif event.kind == "position_closed":
            t = p["trade"]
            self.position_closed(p["position_id"], t["size"], t["price"], t["realized_pnl"])
