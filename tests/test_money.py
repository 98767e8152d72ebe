from __future__ import annotations

from decimal import Decimal

import pytest

from backoffice.utils.money import D, fmt_money, money_sum, pct_change, q2


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, Decimal("0")),
        (0.1, Decimal("0.1")),
        ("12.345", Decimal("12.345")),
        (7, Decimal("7")),
    ],
)
def test_D_accepts_common_inputs(value, expected):
    assert D(value) == expected


def test_q2_rounds_half_up():
    assert q2("2.345") == Decimal("2.35")
    assert q2("-2.345") == Decimal("-2.35")
    assert q2(1) == Decimal("1.00")


def test_money_sum_avoids_float_drift():
    assert money_sum([0.1, 0.2]) == Decimal("0.30")
    assert money_sum([]) == Decimal("0.00")


def test_pct_change_and_format():
    assert pct_change(200, 250) == Decimal("25.00")
    assert pct_change(-100, -50) == Decimal("50.00")
    assert pct_change(0, 10) is None
    assert fmt_money(1234567.891) == "1,234,567.89"
