from __future__ import annotations

import requests

from pricewatch.checker import HttpPriceChecker
from pricewatch.monitoring.models import CheckCandidate, PriceQuote

ENDPOINT = "https://prices.test/lookup?url={url}&id={item_id}"


class _Response:
    def __init__(self, status_code: int = 200, payload=None, invalid_json: bool = False) -> None:
        self.status_code = status_code
        self._payload = payload
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload


class _Session:
    def __init__(self, responses: dict[str, object]) -> None:
        self.responses = responses
        self.urls: list[str] = []

    def get(self, url: str, timeout: float):
        self.urls.append(url)
        item_id = url.rsplit("=", 1)[-1]
        response = self.responses[item_id]
        if isinstance(response, Exception):
            raise response
        return response


def _candidate(item_id: str, currency: str = "USD") -> CheckCandidate:
    return CheckCandidate(
        id=item_id,
        owner_id="owner-1",
        previous_value=10.0,
        currency=currency,
        source=f"https://shop.test/p/{item_id}",
    )


def test_results_are_positional_and_failures_are_none() -> None:
    session = _Session(
        {
            "1": _Response(payload={"price": "$1,299.99", "currency": "usd"}),
            "2": _Response(status_code=503),
            "3": requests.ConnectionError("refused"),
            "4": _Response(invalid_json=True),
            "5": _Response(payload={"price": None}),
            "6": _Response(payload={"price": 0}),
            "7": _Response(payload={"price": 12.5}),
        }
    )
    checker = HttpPriceChecker(ENDPOINT, session=session)

    results = checker.check_candidates([_candidate(str(n), currency="EUR" if n == 7 else "USD") for n in range(1, 8)])

    assert results[0] == PriceQuote(item_id="1", value=1299.99, currency="USD")
    assert results[1:6] == [None, None, None, None, None]
    assert results[6] == PriceQuote(item_id="7", value=12.5, currency="EUR")


def test_source_url_is_quoted_into_endpoint() -> None:
    session = _Session({"1": _Response(payload={"price": 3})})
    HttpPriceChecker(ENDPOINT, session=session).check_candidates([_candidate("1")])

    assert session.urls == ["https://prices.test/lookup?url=https%3A%2F%2Fshop.test%2Fp%2F1&id=1"]


def test_missing_endpoint_fails_every_candidate() -> None:
    session = _Session({})
    results = HttpPriceChecker("", session=session).check_candidates([_candidate("1"), _candidate("2")])

    assert results == [None, None]
    assert session.urls == []

