"""Tests for decimal to base-unit conversion."""

from decimal import Decimal

import pytest

from batch_airdrop.batch import normalize_amount
from batch_airdrop.errors import ConfigurationError, InvalidAmountError


@pytest.mark.parametrize(
    "amount, decimals, expected",
    [
        ("1", 6, "1000000"),
        ("1.5", 6, "1500000"),
        ("0.000001", 6, "1"),
        ("1.000001", 6, "1000001"),
        ("0", 18, "0"),
        ("0.0", 6, "0"),
        ("007", 2, "700"),
        ("42", 0, "42"),
        ("123456789012345678901234567890", 18,
         "123456789012345678901234567890" + "0" * 18),
    ],
)
def test_normalize_amount(amount, decimals, expected):
    assert normalize_amount(amount, decimals) == expected


def test_accepts_int_and_decimal():
    assert normalize_amount(25, 2) == "2500"
    assert normalize_amount(Decimal("0.25"), 2) == "25"


def test_large_amount_is_exact():
    assert normalize_amount("1000000000.123456789123456789", 18) == "1000000000123456789123456789"


def test_rejects_fraction_longer_than_decimals():
    with pytest.raises(InvalidAmountError, match="fractional digits"):
        normalize_amount("1.0000001", 6)


def test_fraction_must_fit_zero_decimals():
    with pytest.raises(InvalidAmountError):
        normalize_amount("1.5", 0)


@pytest.mark.parametrize("amount", ["", "abc", "-1", "1.", ".5", "1e-7", "1,5", "1.2.3", "١", "１.5"])
def test_rejects_malformed_amounts(amount):
    with pytest.raises(InvalidAmountError, match="Invalid amount"):
        normalize_amount(amount, 6)


def test_rejects_negative_decimals():
    with pytest.raises(InvalidAmountError):
        normalize_amount("1", -1)


def test_invalid_amount_is_a_configuration_error():
    assert issubclass(InvalidAmountError, ConfigurationError)
