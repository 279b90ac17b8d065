from decimal import Decimal

import pytest

from src.integrations.contracts.conditions import (
    ConditionSyntaxError,
    Equals,
    GreaterThan,
    LessThan,
    parse_condition,
    try_parse_condition,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("=== true", Equals(True)),
        ("value === false", Equals(False)),
        ("value === 'diesel'", Equals("diesel")),
        ('=== "SUV"', Equals("SUV")),
        ("value > 50", GreaterThan(Decimal("50"))),
        ("< 3.5", LessThan(Decimal("3.5"))),
    ],
)
def test_parse_condition(text, expected):
    assert parse_condition(text) == expected


@pytest.mark.parametrize("text", ["", "value", "value >= 3", "value > many", "=== ''", "value ~ 1"])
def test_parse_condition_rejects_malformed(text):
    with pytest.raises(ConditionSyntaxError):
        parse_condition(text)
    assert try_parse_condition(text) is None


def test_equals_boolean_only_matches_booleans():
    cond = Equals(True)
    assert cond.matches(True)
    assert not cond.matches("true")
    assert not cond.matches(1)
    assert not cond.matches(None)


def test_equals_string_compares_text():
    assert Equals("diesel").matches("diesel")
    assert not Equals("diesel").matches("Diesel")
    assert Equals("4").matches(4)
    assert Equals("4").matches(4.0)


def test_thresholds_coerce_numbers():
    assert GreaterThan(Decimal("50")).matches("51")
    assert not GreaterThan(Decimal("50")).matches(50)
    assert LessThan(Decimal("3")).matches(2.5)
    assert not LessThan(Decimal("3")).matches("abc")
    assert not LessThan(Decimal("3")).matches(None)

