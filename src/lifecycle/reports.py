"""Dashboard figures over the collections an actor can see."""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable, Sequence

from src.integrations.contracts.interfaces import (
    Client,
    Commission,
    CommissionStatus,
    Offer,
    OfferStatus,
    PaymentStatus,
    Policy,
    PolicyStatus,
    Renewal,
    RenewalStatus,
)

_UNPAID_STATES = frozenset({PolicyStatus.CANCELLED, PolicyStatus.AWAITING_PAYMENT, PolicyStatus.PENDING})
_SETTLED_PAYMENTS = frozenset({PaymentStatus.PAID, PaymentStatus.VALIDATED})


@dataclass(frozen=True)
class DashboardStats:
    total_clients: int
    active_policies: int
    pending_offers: int
    total_premium: Decimal
    pending_commissions: Decimal
    paid_commissions: Decimal
    expiring_this_month: int
    pending_renewals: int = 0


def _counts_as_collected(policy: Policy) -> bool:
    if policy.status in _UNPAID_STATES:
        return False
    return policy.status == PolicyStatus.ACTIVE or policy.payment_status in _SETTLED_PAYMENTS


def _sum(amounts: Iterable[Decimal]) -> Decimal:
    return sum(amounts, Decimal("0"))


def build_dashboard(
    clients: Sequence[Client],
    policies: Sequence[Policy],
    commissions: Sequence[Commission],
    offers: Sequence[Offer],
    today: date,
    renewals: Sequence[Renewal] = (),
) -> DashboardStats:
    """
    Aggregate already scope-filtered (and expiry-applied) collections.

    Collected premium counts policies that are ACTIVE or whose payment has
    been settled, excluding cancelled ones and ones still awaiting payment,
    floored to whole currency units.
    """
    collected = _sum(p.premium for p in policies if _counts_as_collected(p))
    return DashboardStats(
        total_clients=len(clients),
        active_policies=sum(1 for p in policies if p.status == PolicyStatus.ACTIVE),
        pending_offers=sum(1 for o in offers if o.status == OfferStatus.PENDING),
        total_premium=collected.quantize(Decimal("1"), rounding=ROUND_FLOOR),
        pending_commissions=_sum(c.amount for c in commissions if c.status == CommissionStatus.PENDING),
        paid_commissions=_sum(c.amount for c in commissions if c.status == CommissionStatus.PAID),
        expiring_this_month=sum(
            1
            for p in policies
            if p.status == PolicyStatus.ACTIVE
            and p.end_date.year == today.year
            and p.end_date.month == today.month
        ),
        pending_renewals=sum(1 for r in renewals if r.status == RenewalStatus.PENDING),
    )
