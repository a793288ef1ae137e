"""Repository helpers for interacting with persistent storage."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from .models_sql import Account, PriceHistory, TrackedItem


def upsert_account(
    session: Session,
    account_id: str,
    email: str,
    *,
    name: str | None = None,
    is_admin: bool = False,
) -> Account:
    account = session.get(Account, account_id)
    if account is None:
        account = Account(id=account_id, email=email, name=name, is_admin=is_admin)
        session.add(account)
    else:
        account.email = email
        account.name = name
        account.is_admin = is_admin
    session.flush()
    return account


def upsert_item(
    session: Session,
    item_id: str,
    owner_id: str,
    title: str,
    url: str,
    *,
    retailer: str | None = None,
    current_price: float | None = None,
    currency: str = "USD",
    checked_at: datetime | None = None,
) -> TrackedItem:
    item = session.get(TrackedItem, item_id)
    if item is None:
        item = TrackedItem(
            id=item_id,
            owner_id=owner_id,
            title=title,
            url=url,
            retailer=retailer,
            current_price=current_price,
            currency=currency,
            checked_at=checked_at,
        )
        session.add(item)
    else:
        item.owner_id = owner_id
        item.title = title
        item.url = url
        item.retailer = retailer
        item.currency = currency
    session.flush()
    return item


def get_items_due_for_check(
    session: Session,
    *,
    limit: int,
    older_than: timedelta = timedelta(hours=24),
    now: datetime | None = None,
) -> list[TrackedItem]:
    """Return items never checked or last checked before ``now - older_than``, oldest first."""

    if limit <= 0:
        return []
    cutoff = (now or datetime.now(timezone.utc)) - older_than
    stmt = (
        select(TrackedItem)
        .where(or_(TrackedItem.checked_at.is_(None), TrackedItem.checked_at < cutoff))
        .order_by(TrackedItem.checked_at.asc().nulls_first(), TrackedItem.id.asc())
        .limit(limit)
    )
    return list(session.execute(stmt).scalars())


def record_price(
    session: Session,
    item_id: str,
    price: float,
    currency: str,
    *,
    ts_utc: datetime | None = None,
) -> TrackedItem | None:
    """Store a freshly checked price; history grows only when the price moved."""

    item = session.get(TrackedItem, item_id)
    if item is None:
        return None

    ts = ts_utc or datetime.now(timezone.utc)
    if item.current_price != price or item.currency != currency:
        session.add(PriceHistory(item_id=item_id, ts_utc=ts, price=price, currency=currency))
    item.current_price = price
    item.currency = currency
    item.checked_at = ts
    session.flush()
    return item


def find_admin_accounts(session: Session) -> list[Account]:
    stmt = select(Account).where(Account.is_admin.is_(True)).order_by(Account.id.asc())
    return list(session.execute(stmt).scalars())


def find_all_accounts(session: Session) -> list[Account]:
    return list(session.execute(select(Account).order_by(Account.id.asc())).scalars())


def owned_item_ids(session: Session, owner_id: str) -> list[str]:
    stmt = select(TrackedItem.id).where(TrackedItem.owner_id == owner_id).order_by(TrackedItem.id.asc())
    return [row[0] for row in session.execute(stmt)]


def get_items_by_ids(session: Session, item_ids: Iterable[str]) -> list[TrackedItem]:
    ids = list(dict.fromkeys(item_ids))
    if not ids:
        return []
    stmt = select(TrackedItem).where(TrackedItem.id.in_(ids))
    found = {item.id: item for item in session.execute(stmt).scalars()}
    return [found[item_id] for item_id in ids if item_id in found]


def list_price_history(session: Session, item_id: str) -> list[PriceHistory]:
    stmt = (
        select(PriceHistory)
        .where(PriceHistory.item_id == item_id)
        .order_by(PriceHistory.ts_utc.asc(), PriceHistory.id.asc())
    )
    return list(session.execute(stmt).scalars())
