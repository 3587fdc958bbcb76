import logging
import time
from typing import Callable

from common.repository.rate_limit_repo import RateLimitRepository, RateLimitState
from common.utils.constants import (
    GUEST_BOOKING_LIMIT,
    RATE_LIMIT_WINDOW_SECONDS,
    SIGNATURE_FAILURE_LIMIT,
)
from common.utils.custom_exceptions import RateLimited

logger = logging.getLogger(__name__)

GUEST_BOOKING_ACTION = "guest_booking"
SIGNATURE_FAILURE_ACTION = "signature_failure"


class RateLimitService:
    def __init__(
        self,
        rate_limit_repo: RateLimitRepository,
        audit_service=None,
        clock: Callable[[], float] = time.time,
    ):
        self.rate_limit_repo = rate_limit_repo
        self.audit_service = audit_service
        self.clock = clock

    def hit(
        self,
        action: str,
        identifier: str,
        limit: int,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
    ) -> RateLimitState:
        return self.rate_limit_repo.hit(
            action, identifier, limit, window_seconds, int(self.clock())
        )

    def enforce_guest_booking_limit(self, email: str):
        state = self.hit(GUEST_BOOKING_ACTION, email, GUEST_BOOKING_LIMIT)
        if state.allowed:
            return

        retry_after = max(0, state.reset_at - int(self.clock()))
        logger.warning(f"Guest booking limit reached for {email}")
        if self.audit_service:
            self.audit_service.rate_limit_exceeded(email, GUEST_BOOKING_ACTION, retry_after)
        minutes = max(1, -(-retry_after // 60))
        raise RateLimited(
            f"Too many booking attempts. Please try again in {minutes} minutes.",
            retry_after=retry_after,
        )

    def record_signature_failure(self, booking_id: str) -> bool:
        """Counts a failed signature; True once the booking looks suspicious."""
        state = self.hit(SIGNATURE_FAILURE_ACTION, booking_id, SIGNATURE_FAILURE_LIMIT)
        return not state.allowed
