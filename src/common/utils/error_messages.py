import logging

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout

from common.utils.custom_exceptions import (
    AvailabilityConflict,
    BookingValidationError,
    GatewayUnavailable,
    RateLimited,
)

logger = logging.getLogger(__name__)

CONSTRAINT_MESSAGE = (
    "This booking conflicts with an existing record. "
    "Please refresh the page and try again."
)
NETWORK_MESSAGE = (
    "Network connection issue or timeout. Please check your connection and try again."
)
VALIDATION_MESSAGE = "Some booking details are invalid. Please review them and try again."
GENERIC_MESSAGE = (
    "An unexpected error occurred. Please try again or contact support "
    "if the issue persists."
)

CONSTRAINT_CODES = {
    "ConditionalCheckFailedException",
    "TransactionCanceledException",
    "TransactionConflictException",
}
NETWORK_CODES = {
    "RequestTimeout",
    "RequestTimeoutException",
    "ServiceUnavailable",
    "ThrottlingException",
    "ProvisionedThroughputExceededException",
}
NETWORK_ERRORS = (
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    RequestsConnectionError,
    Timeout,
    GatewayUnavailable,
    TimeoutError,
    ConnectionError,
)


def classify_error(error: Exception) -> str:
    if isinstance(error, (BookingValidationError, ValueError)):
        return "validation"
    if isinstance(error, AvailabilityConflict):
        return "constraint"
    if isinstance(error, NETWORK_ERRORS):
        return "network"
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        if code in CONSTRAINT_CODES:
            return "constraint"
        if code in NETWORK_CODES:
            return "network"
    return "generic"


def user_message_for(error: Exception) -> str:
    """Maps an error to a message that is safe to show to a guest."""
    if isinstance(error, (BookingValidationError, RateLimited, AvailabilityConflict)):
        return str(error)

    category = classify_error(error)
    if category == "constraint":
        return CONSTRAINT_MESSAGE
    if category == "network":
        return NETWORK_MESSAGE
    if category == "validation":
        return VALIDATION_MESSAGE

    logger.error(f"Unclassified error surfaced to user: {error!r}")
    return GENERIC_MESSAGE
