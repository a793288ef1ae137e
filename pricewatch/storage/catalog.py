"""SQL-backed catalog and account directory used by the orchestrator."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Sequence

from sqlalchemy.orm import Session, sessionmaker

from pricewatch.monitoring.models import Account, CheckCandidate, PriceQuote

from . import repo
from .models_sql import Account as AccountRow


def _to_account(row: AccountRow) -> Account:
    return Account(id=row.id, email=row.email, name=row.name, is_admin=bool(row.is_admin))


def _lowest_price(session: Session, item_id: str, current: float | None) -> float | None:
    prices = [entry.price for entry in repo.list_price_history(session, item_id)]
    if current is not None:
        prices.append(current)
    return min(prices, default=None)


class SqlCatalog:
    """Implements the catalog and account-directory contracts on SQLAlchemy sessions."""

    def __init__(self, session_factory: sessionmaker[Session], *, due_after_hours: float = 24) -> None:
        self._session_factory = session_factory
        self._due_after = timedelta(hours=due_after_hours)

    def fetch_due_candidates(self, limit: int) -> list[CheckCandidate]:
        with self._session_factory() as session:
            items = repo.get_items_due_for_check(session, limit=limit, older_than=self._due_after)
            return [
                CheckCandidate(
                    id=item.id,
                    owner_id=item.owner_id,
                    previous_value=item.current_price,
                    currency=item.currency,
                    source=item.url,
                )
                for item in items
            ]

    def owned_item_ids(self, account_id: str) -> list[str]:
        with self._session_factory() as session:
            return repo.owned_item_ids(session, account_id)

    def item_details(self, item_ids: Sequence[str]) -> list[dict[str, Any]]:
        with self._session_factory() as session:
            return [
                {
                    "id": item.id,
                    "title": item.title,
                    "url": item.url,
                    "retailer": item.retailer,
                    "currency": item.currency,
                    "current_price": item.current_price,
                    "lowest_price": _lowest_price(session, item.id, item.current_price),
                }
                for item in repo.get_items_by_ids(session, item_ids)
            ]

    def record_quote(self, quote: PriceQuote) -> bool:
        """Persist a checked price; ``False`` when the item no longer exists."""

        with self._session_factory() as session:
            item = repo.record_price(session, quote.item_id, quote.value, quote.currency)
            session.commit()
            return item is not None

    def find_admins(self) -> list[Account]:
        with self._session_factory() as session:
            return [_to_account(row) for row in repo.find_admin_accounts(session)]

    def find_all_accounts(self) -> list[Account]:
        with self._session_factory() as session:
            return [_to_account(row) for row in repo.find_all_accounts(session)]
