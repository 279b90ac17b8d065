"""Domain errors raised by the rating engine and the lifecycle services.

Every error carries a human-readable ``message`` and, where a specific input
is at fault, a ``field_errors`` mapping (field name -> message) so the API can
point the caller at the offending input.
"""

from __future__ import annotations

from typing import Dict, Optional


class BrokerageError(Exception):
    """Base class for every failure the core reports to its callers."""

    def __init__(self, message: str, *, field_errors: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field_errors: Dict[str, str] = dict(field_errors or {})

    def __str__(self) -> str:
        return self.message


class ValidationError(BrokerageError):
    """Malformed or missing input to a rating or lifecycle call."""


class PermissionDeniedError(BrokerageError):
    """The actor's role or scope does not allow the requested operation."""


class InvalidStateError(BrokerageError):
    """The requested transition is not legal from the entity's current state."""


class OfferExpiredError(BrokerageError):
    """The offer validity window has passed; a new offer must be created."""


class ConsentRequiredError(BrokerageError):
    """GDPR consent was not given."""


class NotFoundError(BrokerageError):
    """No entity exists with the requested id."""


def raise_if_errors(errors: Dict[str, str], message: str = "Please correct the highlighted fields") -> None:
    if errors:
        raise ValidationError(message, field_errors=errors)
