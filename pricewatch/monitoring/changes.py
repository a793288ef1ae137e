"""Process-wide accumulator of detected price changes."""

from __future__ import annotations

import threading

from pricewatch.monitoring.models import ChangeRecord


class ChangeBuffer:
    """Append-only list of :class:`ChangeRecord` drained by the weekly summary.

    Every run appends to the same buffer, possibly from overlapping runs, so
    both mutations take the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[ChangeRecord] = []

    def append(self, record: ChangeRecord) -> None:
        with self._lock:
            self._records.append(record)

    def drain_all(self) -> list[ChangeRecord]:
        """Return every buffered record and leave the buffer empty."""

        with self._lock:
            records = self._records
            self._records = []
        return records

    def snapshot(self) -> list[ChangeRecord]:
        with self._lock:
            return list(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
