"""Interfaces the orchestrator expects from its external collaborators.

All methods are synchronous; the orchestrator calls them through
``asyncio.to_thread`` so a slow database or HTTP call never stalls the
scheduler's event loop.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol, Sequence

from pricewatch.monitoring.models import Account, CheckCandidate, NotificationType, PriceQuote


class Catalog(Protocol):
    def fetch_due_candidates(self, limit: int) -> list[CheckCandidate]:
        ...

    def owned_item_ids(self, account_id: str) -> list[str]:
        ...

    def item_details(self, item_ids: Sequence[str]) -> list[dict[str, Any]]:
        ...

    def record_quote(self, quote: PriceQuote) -> bool:
        """Persist an accepted quote; ``False`` when the item is gone."""
        ...


class Checker(Protocol):
    def check_candidates(self, candidates: Sequence[CheckCandidate]) -> list[PriceQuote | None]:
        """Return one quote per candidate, positionally; ``None`` marks a failed check."""
        ...


class AccountDirectory(Protocol):
    def find_admins(self) -> list[Account]:
        ...

    def find_all_accounts(self) -> list[Account]:
        ...


class Notifier(Protocol):
    def notify(
        self,
        notification_type: NotificationType,
        account: Account,
        data: Mapping[str, Any],
    ) -> bool:
        ...


class Telemetry(Protocol):
    def track_result(self, result: Mapping[str, Any]) -> None:
        ...

    def track_change(self, change: Mapping[str, Any]) -> None:
        ...
