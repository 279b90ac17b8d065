"""
Payment contract: how a checkout payment method maps onto the initial policy
state, and parsing helpers for payment method input.
"""

from typing import Any, Tuple

from src.errors import ValidationError
from src.integrations.contracts.interfaces import PaymentMethod, PaymentStatus, PolicyStatus

# Online card payments are settled by the processor and need no manual validation.
SELF_VALIDATING_METHODS = frozenset({PaymentMethod.CARD_ONLINE})

# States from which a (re)uploaded proof moves the policy to AWAITING_VALIDATION.
PROOF_UPLOAD_STATES = frozenset({
    PolicyStatus.PENDING,
    PolicyStatus.AWAITING_PAYMENT,
    PolicyStatus.AWAITING_VALIDATION,
})

# A policy in these states cannot be cancelled.
TERMINAL_POLICY_STATES = frozenset({PolicyStatus.CANCELLED, PolicyStatus.EXPIRED})


def parse_payment_method(value: Any) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    raw = str(value or "").strip().upper()
    try:
        return PaymentMethod(raw)
    except ValueError:
        allowed = ", ".join(m.value for m in PaymentMethod)
        raise ValidationError(
            f"Unsupported payment method: {value!r}",
            field_errors={"payment_method": f"Expected one of: {allowed}"},
        )


def initial_payment_state(method: PaymentMethod, has_proof: bool) -> Tuple[PolicyStatus, PaymentStatus]:
    """Return (policy status, payment status) for a freshly converted offer."""
    if method in SELF_VALIDATING_METHODS:
        return PolicyStatus.ACTIVE, PaymentStatus.VALIDATED
    if has_proof:
        return PolicyStatus.AWAITING_VALIDATION, PaymentStatus.PENDING
    return PolicyStatus.AWAITING_PAYMENT, PaymentStatus.PENDING


def is_terminal_status(status: PolicyStatus) -> bool:
    """Return True if the policy has reached a state no manual action can leave."""
    return status in TERMINAL_POLICY_STATES
