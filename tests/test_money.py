from decimal import Decimal

import pytest

from backend.money import is_currency_code, is_zero, normalize_currency, round_money


@pytest.mark.parametrize(
    "value, expected",
    [
        (1.005, "1.01"),
        (0.1 + 0.2, "0.30"),
        (-2.675, "-2.68"),
        (-0.005, "-0.01"),
        ("33.333", "33.33"),
        (10, "10.00"),
    ],
)
def test_round_money_half_away_from_zero(value, expected):
    assert round_money(value) == Decimal(expected)


def test_round_money_propagates_nan():
    assert round_money(float("nan")).is_nan()


def test_round_money_passes_infinity_through():
    assert round_money(Decimal("-Infinity")) == Decimal("-Infinity")


def test_nan_is_never_zero():
    assert not is_zero(float("nan"))
    assert not is_zero(Decimal("NaN"))


def test_is_zero_uses_half_cent_tolerance():
    assert is_zero(0)
    assert is_zero(0.004999)
    assert is_zero(Decimal("-0.0049"))
    assert not is_zero(Decimal("0.005"))
    assert not is_zero(-0.01)


def test_normalize_currency():
    assert normalize_currency(" sgd ") == "SGD"
    assert normalize_currency(None) is None
    assert normalize_currency("", "usd") == "USD"


def test_is_currency_code():
    assert is_currency_code("SGD")
    assert not is_currency_code("DOLLARS")
    assert not is_currency_code("US1")
    assert not is_currency_code(None)


def test_round_money_rejects_non_numbers():
    with pytest.raises(ValueError):
        round_money(None)
    with pytest.raises(ValueError):
        round_money(True)
