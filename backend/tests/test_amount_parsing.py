import math
import os
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[2]))
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from backend.app.normalize.amounts import format_amount, parse_amount, parse_signed_amount


@pytest.mark.parametrize("raw", ["1.234,56", "1234.56", 1234.56, "1,234.56", "$ 1.234,56"])
def test_separator_conventions_agree(raw):
    assert parse_signed_amount(raw) == 1234.56


@pytest.mark.parametrize("raw", ["0", "", "abc", None, 0, float("nan"), float("inf"), True, "-", ","])
def test_zero_and_garbage_are_not_amounts(raw):
    assert parse_signed_amount(raw) is None


def test_sign_is_preserved():
    assert parse_signed_amount("-50") == -50.0
    assert parse_signed_amount("$ -1.000,00") == -1000.0


def test_comma_only_is_decimal_point():
    assert parse_signed_amount("1234,5") == 1234.5


def test_parse_amount_allows_zero():
    assert parse_amount("0") == 0.0
    assert parse_amount(0) == 0.0
    assert parse_amount("abc") is None
    assert parse_amount(False) is None


def test_reparsing_formatted_value_is_stable():
    for raw in ("1.234,56", "99,9", "-12.5", 7):
        first = parse_signed_amount(raw)
        again = parse_signed_amount(format_amount(first))
        assert math.isclose(first, again)
