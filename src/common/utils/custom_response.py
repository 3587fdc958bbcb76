import logging
from pydantic import BaseModel
from typing import Any, Dict, Generic, TypeVar, Optional

from common.utils.custom_exceptions import (
    AvailabilityCheckError,
    AvailabilityConflict,
    BookingAccessDenied,
    BookingNotPayable,
    BookingValidationError,
    GatewayError,
    GatewayUnavailable,
    InvalidDates,
    NotFoundException,
    PaymentVerificationError,
    PersistenceError,
    PriceCalculationError,
    RateLimited,
    SignatureVerificationError,
)
from common.utils.error_messages import user_message_for

logger = logging.getLogger(__name__)

T = TypeVar("T")

# order matters: subclasses before their bases
ERROR_STATUS_CODES = (
    (BookingValidationError, 400),
    (InvalidDates, 400),
    (SignatureVerificationError, 400),
    (PaymentVerificationError, 400),
    (BookingAccessDenied, 403),
    (AvailabilityConflict, 409),
    (BookingNotPayable, 409),
    (RateLimited, 429),
    (PersistenceError, 500),
    (GatewayUnavailable, 503),
    (GatewayError, 502),
    (PriceCalculationError, 503),
    (AvailabilityCheckError, 503),
)

# errors whose own text was written for end users
SAFE_MESSAGE_ERRORS = (
    BookingValidationError,
    InvalidDates,
    SignatureVerificationError,
    PaymentVerificationError,
    BookingAccessDenied,
    AvailabilityConflict,
    BookingNotPayable,
    RateLimited,
    PersistenceError,
    NotFoundException,
    PriceCalculationError,
    AvailabilityCheckError,
)


class APIResponse(BaseModel, Generic[T]):
    status_code: int
    message: str
    data: Optional[T] = None


def send_custom_response(
    status_code: int,
    message: str,
    data: Optional[T] = None,
    headers: Optional[Dict[str, str]] = None,
):
    response_headers = {"Content-Type": "application/json"}
    if headers:
        response_headers.update(headers)
    return {
        "statusCode": status_code,
        "headers": response_headers,
        "body": APIResponse[Any](
            status_code=status_code, message=message, data=data
        ).model_dump_json(),
    }


def _status_for(error: Exception) -> int:
    if isinstance(error, NotFoundException):
        return error.status_code
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def send_error_response(error: Exception):
    """Translates a domain error into a user-safe API response."""
    status_code = _status_for(error)
    headers = None
    data = None

    if isinstance(error, BookingValidationError):
        data = {"errors": error.errors}
    if isinstance(error, RateLimited) and error.retry_after is not None:
        headers = {"Retry-After": str(error.retry_after)}
        data = {"retry_after": error.retry_after}

    if isinstance(error, SAFE_MESSAGE_ERRORS):
        message = str(error)
    else:
        message = user_message_for(error)

    if status_code >= 500 and not isinstance(error, SAFE_MESSAGE_ERRORS):
        logger.error(f"Request failed: {error!r}")
    return send_custom_response(status_code, message, data, headers)


def format_validation_error(error) -> str:
    """Flattens a pydantic ValidationError into one readable line."""
    return "; ".join(
        f"{'.'.join(map(str, err['loc']))}: {err['msg']}" if err["loc"] else err["msg"]
        for err in error.errors()
    )
