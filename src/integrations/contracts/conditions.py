"""
Factor conditions for product custom fields.

A custom field may carry a rating factor that applies only when the field's
runtime value satisfies a condition. Conditions are written by administrators
as short expressions and parsed ONCE, when the product is defined:

    "=== true"            -> Equals(True)
    "value === 'diesel'"  -> Equals("diesel")
    "value > 50"          -> GreaterThan(50)
    "< 3"                 -> LessThan(3)

Rating only ever sees the parsed variants below.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional, Union

from src.utils.money import to_decimal

_CONDITION_RE = re.compile(r"^\s*(?:[A-Za-z_][\w.]*\s*)?(===|<|>)\s*(.+?)\s*$")


class ConditionSyntaxError(ValueError):
    pass


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (float, Decimal)):
        number = Decimal(str(value))
        if number.is_finite() and number == number.to_integral_value():
            return str(int(number))
    return str(value)


def _as_number(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return Decimal(int(value))
    number = to_decimal(value)
    if number is None or not number.is_finite():
        return None
    return number


@dataclass(frozen=True)
class Equals:
    literal: Union[bool, str]

    def matches(self, value: Any) -> bool:
        if isinstance(self.literal, bool):
            return isinstance(value, bool) and value is self.literal
        return _as_text(value) == self.literal


@dataclass(frozen=True)
class LessThan:
    threshold: Decimal

    def matches(self, value: Any) -> bool:
        number = _as_number(value)
        return number is not None and number < self.threshold


@dataclass(frozen=True)
class GreaterThan:
    threshold: Decimal

    def matches(self, value: Any) -> bool:
        number = _as_number(value)
        return number is not None and number > self.threshold


FactorCondition = Union[Equals, LessThan, GreaterThan]


def parse_condition(text: str) -> FactorCondition:
    """Parse a condition expression, raising ConditionSyntaxError when it is malformed."""
    match = _CONDITION_RE.match(text or "")
    if not match:
        raise ConditionSyntaxError(f"Unsupported condition: {text!r}")

    operator, operand = match.group(1), match.group(2)
    if operator == "===":
        literal = operand.strip().strip("'\"")
        if operand in ("true", "false"):
            return Equals(operand == "true")
        if not literal:
            raise ConditionSyntaxError(f"Missing literal in condition: {text!r}")
        return Equals(literal)

    threshold = to_decimal(operand)
    if threshold is None or not threshold.is_finite():
        raise ConditionSyntaxError(f"Threshold must be a number in condition: {text!r}")
    return LessThan(threshold) if operator == "<" else GreaterThan(threshold)


def try_parse_condition(text: Optional[str]) -> Optional[FactorCondition]:
    """Like parse_condition, but returns None for missing or malformed input."""
    if not text or not text.strip():
        return None
    try:
        return parse_condition(text)
    except ConditionSyntaxError:
        return None
