from botocore.exceptions import ClientError
import logging
from typing import Any, Dict, Optional

from common.models.audit import AuditAction, AuditEvent, Severity
from common.repository.audit_repo import AuditRepository

logger = logging.getLogger(__name__)

LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.CRITICAL: logging.CRITICAL,
}
REDACTED_KEYS = {"signature", "razorpay_signature", "secret", "key_secret", "password", "token"}


class AuditService:
    def __init__(self, audit_repo: Optional[AuditRepository] = None):
        self.audit_repo = audit_repo

    def log(
        self,
        action: AuditAction,
        identifier: str,
        severity: Severity = Severity.INFO,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEvent:
        clean = {
            key: value
            for key, value in (details or {}).items()
            if key.lower() not in REDACTED_KEYS
        }
        event = AuditEvent(
            action=action,
            identifier=identifier,
            severity=severity,
            resource_type=resource_type,
            resource_id=resource_id,
            details=clean,
        )
        logger.log(
            LOG_LEVELS[severity],
            f"AUDIT {action.value} identifier={identifier} "
            f"resource={resource_type}:{resource_id} details={clean}",
        )

        if self.audit_repo is not None:
            try:
                self.audit_repo.add_event(event)
            except ClientError as err:
                # the log line above is the fallback record
                logger.error(f"Audit event {action.value} was not persisted: {err}")
        return event

    def rate_limit_exceeded(self, identifier: str, action: str, retry_after: int):
        return self.log(
            AuditAction.RATE_LIMIT_EXCEEDED,
            identifier,
            Severity.WARNING,
            details={"limited_action": action, "retry_after": retry_after},
        )

    def signature_failed(self, booking_id: str, order_id: str, payment_id: str):
        return self.log(
            AuditAction.SIGNATURE_VERIFICATION_FAILED,
            booking_id,
            Severity.CRITICAL,
            resource_type="booking",
            resource_id=booking_id,
            details={"order_id": order_id, "payment_id": payment_id},
        )

    def suspicious_activity(self, identifier: str, reason: str, **details):
        return self.log(
            AuditAction.SUSPICIOUS_ACTIVITY,
            identifier,
            Severity.CRITICAL,
            details={"reason": reason, **details},
        )
