"""HTTP client for the external price lookup service."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import quote, urlparse

import requests

from pricewatch.logging_config import get_logger
from pricewatch.monitoring.models import CheckCandidate, PriceQuote
from pricewatch.normalizers import parse_price

LOGGER = get_logger(__name__)


class HttpPriceChecker:
    """Ask a price lookup service for the current price of each candidate.

    ``endpoint`` is a URL template with ``{url}`` (the item's page, quoted)
    and optionally ``{item_id}``; the service answers with JSON holding
    ``price`` and ``currency``. Every failure becomes ``None`` for that item
    so one bad page never hides the results of the others. Quotes are not
    stored here; the caller persists the ones it accepts.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 20.0,
        session: requests.Session | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._session = session or requests.Session()

    def check_candidates(self, candidates: Sequence[CheckCandidate]) -> list[PriceQuote | None]:
        return [self._check_one(candidate) for candidate in candidates]

    def _check_one(self, candidate: CheckCandidate) -> PriceQuote | None:
        if not self._endpoint:
            LOGGER.warning("Price lookup endpoint not configured; cannot check item %s", candidate.id)
            return None

        url = self._endpoint.format(url=quote(candidate.source, safe=""), item_id=candidate.id)
        host = urlparse(url).netloc
        try:
            response = self._session.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            LOGGER.warning("Price lookup failed for item %s host=%s: %s", candidate.id, host, exc)
            return None

        if response.status_code >= 400:
            LOGGER.warning(
                "Price lookup returned status %s for item %s host=%s",
                response.status_code,
                candidate.id,
                host,
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            LOGGER.warning("Price lookup returned invalid JSON for item %s", candidate.id)
            return None

        price = parse_price(payload.get("price")) if isinstance(payload, dict) else None
        if price is None or price <= 0:
            LOGGER.warning("No usable price for item %s: %r", candidate.id, payload)
            return None

        currency = str(payload.get("currency") or candidate.currency or "USD").upper()
        return PriceQuote(item_id=candidate.id, value=price, currency=currency)
