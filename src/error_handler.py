"""Error handling helpers: map any exception to an HTTP status and JSON payload."""
from typing import Any, Dict, Optional, Tuple
import logging

from src.errors import (
    BrokerageError,
    ConsentRequiredError,
    InvalidStateError,
    NotFoundError,
    OfferExpiredError,
    PermissionDeniedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; the first matching type wins.
_STATUS_BY_ERROR = (
    (ValidationError, 422),
    (ConsentRequiredError, 422),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (OfferExpiredError, 410),
    (InvalidStateError, 409),
)


class ErrorHandler:
    def status_for(self, exc: Exception) -> int:
        for error_type, status_code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                return status_code
        return 500

    def handle_exception(self, exc: Exception, context: Optional[Dict[str, Any]] = None) -> Tuple[int, Dict[str, Any]]:
        status_code = self.status_for(exc)
        if isinstance(exc, BrokerageError) and status_code != 500:
            logger.info("%s: %s %s", type(exc).__name__, exc.message, context or {})
            return status_code, {
                "error": type(exc).__name__,
                "message": exc.message,
                "field_errors": exc.field_errors,
            }

        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return 500, {
            "error": "InternalError",
            "message": "An internal error occurred while processing your request. Please try again later.",
            "field_errors": {},
            "metadata": {"context": context or {}},
        }
