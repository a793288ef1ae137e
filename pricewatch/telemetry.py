"""Structured telemetry for price-check runs."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from pathlib import Path
import threading
import time
from typing import Any, Mapping

from pricewatch.logging_config import get_logger

LOGGER = get_logger(__name__)


@dataclass
class EventTelemetry:
    """Counts run results and price changes, appending each as a JSON line."""

    log_path: Path | None = None
    runs: int = field(init=False, default=0)
    failed_runs: int = field(init=False, default=0)
    price_changes: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        if self.log_path is not None:
            self.log_path = Path(self.log_path)
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def _log(self, event_type: str, details: Mapping[str, Any]) -> None:
        if self.log_path is None:
            return
        entry = {"ts": time.time(), "event": event_type, "details": dict(details)}
        with self._lock, self.log_path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")

    def track_result(self, result: Mapping[str, Any]) -> None:
        success = bool(result.get("success"))
        with self._lock:
            self.runs += 1
            if not success:
                self.failed_runs += 1
        LOGGER.info(
            "Scrape result: %s, %sms%s",
            "Success" if success else "Failure",
            result.get("response_time_ms", 0),
            f", Error: {result['error_type']}" if result.get("error_type") else "",
        )
        self._log("scrape_result", result)

    def track_change(self, change: Mapping[str, Any]) -> None:
        with self._lock:
            self.price_changes += 1
        LOGGER.info(
            "Price change for %s: %s -> %s at %s",
            change.get("item_id"),
            change.get("old_value"),
            change.get("new_value"),
            change.get("timestamp"),
        )
        self._log("price_change", change)

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return {
                "runs": self.runs,
                "failed_runs": self.failed_runs,
                "price_changes": self.price_changes,
            }
