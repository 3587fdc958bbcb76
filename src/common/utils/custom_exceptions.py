from typing import List, Optional


class NotFoundException(Exception):
    def __init__(self, resource: str, identifier: str, status_code: int = 404):
        self.resource = resource
        self.identifier = identifier
        self.status_code = status_code

    def __str__(self):
        return f"{self.resource} '{self.identifier}' not found"


class BookingValidationError(Exception):
    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class AvailabilityConflict(Exception):
    pass


class AvailabilityCheckError(Exception):
    pass


class RateLimited(Exception):
    def __init__(self, message: str, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        super().__init__(message)


class PriceCalculationError(Exception):
    pass


class InvalidDates(PriceCalculationError):
    pass


class PersistenceError(Exception):
    pass


class BookingAccessDenied(Exception):
    pass


class BookingNotPayable(Exception):
    pass


class SignatureVerificationError(Exception):
    pass


class PaymentVerificationError(Exception):
    pass


class GatewayError(Exception):
    pass


class GatewayUnavailable(GatewayError):
    pass


class DuplicateReference(PersistenceError):
    pass
