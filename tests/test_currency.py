from decimal import Decimal

import pytest
import requests

from backend.currency import ExchangeRateClient, RateFetchError, convert

RATES = {"SGD": 1, "USD": 0.74, "EUR": 0.68, "JPY": 0}


def test_same_currency_is_rounded_only():
    assert convert(10.005, "usd", "USD", {}) == Decimal("10.01")


def test_converts_through_anchor():
    # 100 USD -> SGD: 100 * 1 / 0.74
    assert convert(100, "USD", "SGD", RATES) == Decimal("135.14")
    assert convert(100, "SGD", "EUR", RATES) == Decimal("68.00")


def test_missing_rate_falls_back_to_unconverted():
    assert convert(12.345, "GBP", "SGD", RATES) == Decimal("12.35")
    assert convert(50, "SGD", "GBP", RATES) == Decimal("50.00")


def test_zero_source_rate_falls_back_to_unconverted():
    assert convert(50, "JPY", "SGD", RATES) == Decimal("50.00")


def test_round_trip_within_a_cent():
    for amount in (1, 19.99, 123.45, 1000):
        there = convert(amount, "SGD", "USD", RATES)
        back = convert(there, "USD", "SGD", RATES)
        assert abs(back - Decimal(str(amount))) <= Decimal("0.01")


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.ok = status_code < 400

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        return self.response


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_client_fetches_and_caches_per_base():
    session = FakeSession(FakeResponse({"conversion_rates": {"USD": 0.74, "eur": "0.68"}}))
    clock = Clock()
    client = ExchangeRateClient("KEY", cache_seconds=60, clock=clock, session=session)

    rates = client.get_rates("sgd")
    assert rates == {"USD": Decimal("0.74"), "EUR": Decimal("0.68"), "SGD": Decimal("1")}
    assert session.urls == ["https://v6.exchangerate-api.com/v6/KEY/latest/SGD"]

    clock.now = 59
    client.get_rates("SGD")
    assert len(session.urls) == 1

    clock.now = 61
    client.get_rates("SGD")
    assert len(session.urls) == 2


def test_client_requires_api_key():
    client = ExchangeRateClient(None, session=FakeSession(FakeResponse({})))
    with pytest.raises(RateFetchError):
        client.get_rates("SGD")


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse({"result": "error"}),
        FakeResponse(ValueError("not json")),
        FakeResponse({}, status_code=500),
    ],
)
def test_client_rejects_bad_responses(response):
    client = ExchangeRateClient("KEY", session=FakeSession(response))
    with pytest.raises(RateFetchError):
        client.get_rates("SGD")


def test_client_lets_transport_errors_through():
    class BrokenSession:
        def get(self, url, timeout=None):
            raise requests.ConnectionError("down")

    client = ExchangeRateClient("KEY", session=BrokenSession())
    with pytest.raises(requests.RequestException):
        client.get_rates("SGD")
