"""
Premium rating.

    base premium  = sum insured x product base rate         (rounded to cents)
    final premium = base premium x every applicable factor  (rounded to cents)

Factors come from the product's custom fields (multiplier + parsed condition,
in field order) followed by at most one age factor derived from the client's
CNP. The engine is pure: the same inputs and ``today`` always give the same
quote.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from src.errors import raise_if_errors
from src.integrations.contracts.interfaces import Product
from src.rating.cnp import age_on
from src.utils.money import round_money, to_decimal

logger = logging.getLogger(__name__)

SENIOR_AGE = 60
SENIOR_MULTIPLIER = Decimal("1.25")
YOUNG_AGE = 25
YOUNG_MULTIPLIER = Decimal("1.15")


@dataclass(frozen=True)
class RatingFactor:
    name: str
    multiplier: Decimal
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "multiplier": float(self.multiplier), "reason": self.reason}


@dataclass(frozen=True)
class PremiumBreakdown:
    base_premium: Decimal
    final_premium: Decimal
    factors: List[RatingFactor] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form, frozen onto offers."""
        return {
            "base_premium": float(self.base_premium),
            "factors": [f.to_dict() for f in self.factors],
            "final_premium": float(self.final_premium),
        }


@dataclass(frozen=True)
class PremiumQuote:
    premium: Decimal
    breakdown: PremiumBreakdown


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_rating_inputs(
    product: Product,
    sum_insured: Any,
    start_date: Optional[date],
    end_date: Optional[date],
    custom_field_values: Mapping[str, Any],
    today: date,
) -> Decimal:
    """Check preconditions, collecting every problem before raising. Returns the sum insured."""
    errors: Dict[str, str] = {}

    amount = to_decimal(sum_insured)
    if amount is None or not amount.is_finite() or amount <= 0:
        errors["sum_insured"] = "Sum insured must be greater than zero"

    for definition in product.custom_fields:
        if definition.required and _is_missing(custom_field_values.get(definition.name)):
            errors[definition.name] = f"{definition.label} is required"

    if start_date is None:
        errors["start_date"] = "Start date is required"
    elif start_date <= today:
        errors["start_date"] = "Start date must be in the future"

    if end_date is None:
        errors["end_date"] = "End date is required"
    elif start_date is not None and end_date <= start_date:
        errors["end_date"] = "End date must be after start date"

    raise_if_errors(errors, "Cannot calculate premium")
    return amount


def custom_field_factors(product: Product, custom_field_values: Mapping[str, Any]) -> List[RatingFactor]:
    factors: List[RatingFactor] = []
    for definition in product.custom_fields:
        # A zero multiplier counts as unset, like a missing one
        if not definition.factor_multiplier or definition.condition is None:
            continue
        if definition.condition.matches(custom_field_values.get(definition.name)):
            factors.append(
                RatingFactor(
                    name=definition.label,
                    multiplier=definition.factor_multiplier,
                    reason=f"Factor applied for {definition.label}",
                )
            )
    return factors


def age_factor(client_cnp: Optional[str], today: date) -> Optional[RatingFactor]:
    age = age_on(client_cnp, today)
    if age is None:
        return None
    if age > SENIOR_AGE:
        return RatingFactor("Age Factor", SENIOR_MULTIPLIER, f"Client is over {SENIOR_AGE} years old")
    if age < YOUNG_AGE:
        return RatingFactor("Young Driver Factor", YOUNG_MULTIPLIER, f"Client is under {YOUNG_AGE} years old")
    return None


def calculate_premium(
    product: Product,
    sum_insured: Any,
    start_date: Optional[date],
    end_date: Optional[date],
    custom_field_values: Optional[Mapping[str, Any]],
    client_cnp: Optional[str],
    today: Optional[date] = None,
) -> PremiumQuote:
    today = today or date.today()
    values = custom_field_values or {}
    amount = validate_rating_inputs(product, sum_insured, start_date, end_date, values, today)

    base_rate = product.base_rate if product.base_rate is not None else Decimal("0")
    base_premium = round_money(amount * base_rate)

    factors = custom_field_factors(product, values)
    age = age_factor(client_cnp, today)
    if age is not None:
        factors.append(age)

    final = base_premium
    for factor in factors:
        final *= factor.multiplier
    final_premium = round_money(final)

    logger.debug(
        "Rated product %s: base=%s factors=%d final=%s",
        product.code, base_premium, len(factors), final_premium,
    )
    return PremiumQuote(
        premium=final_premium,
        breakdown=PremiumBreakdown(base_premium=base_premium, final_premium=final_premium, factors=factors),
    )
