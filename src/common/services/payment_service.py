from botocore.exceptions import ClientError
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Optional

from common.models.audit import AuditAction, Severity
from common.models.bookings import Booking, BookingStatus, PaymentStatus
from common.models.payments import (
    AttemptStatus,
    FailureOutcome,
    GatewayOrder,
    Payment,
    PaymentAttempt,
    PaymentRecordStatus,
    PaymentStage,
    VerificationResult,
)
from common.repository.booking_repo import BookingRepository
from common.repository.payment_repo import PaymentRepository
from common.services.booking_service import can_access
from common.services.razorpay_gateway import CAPTURED, RazorpayGateway
from common.utils.constants import PAYMENT_CANCELLED_CODE
from common.utils.custom_exceptions import (
    BookingAccessDenied,
    BookingNotPayable,
    BookingValidationError,
    NotFoundException,
    PaymentVerificationError,
    SignatureVerificationError,
)
from common.utils.gst import to_minor_units, to_money

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Payment was cancelled. You can try again whenever you are ready."
FAILED_MESSAGE = (
    "Payment could not be completed. Please try again or use a different payment method."
)


class PaymentService:
    """Drives a booking through gateway order, checkout callback and confirmation."""

    def __init__(
        self,
        booking_repo: BookingRepository,
        payment_repo: PaymentRepository,
        gateway: RazorpayGateway,
        discount_service=None,
        audit_service=None,
        rate_limit_service=None,
        confirmation_service=None,
    ):
        self.booking_repo = booking_repo
        self.payment_repo = payment_repo
        self.gateway = gateway
        self.discount_service = discount_service
        self.audit_service = audit_service
        self.rate_limit_service = rate_limit_service
        self.confirmation_service = confirmation_service

    def _audit(self, action: AuditAction, identifier: str, severity=Severity.INFO, **details):
        if self.audit_service:
            self.audit_service.log(
                action,
                identifier,
                severity,
                resource_type="booking",
                resource_id=details.pop("booking_id", identifier),
                details=details,
            )

    def _load(self, booking_id: str) -> Booking:
        booking = self.booking_repo.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("booking", booking_id, 404)
        return booking

    def initiate(
        self,
        booking_id: str,
        amount: Decimal,
        currency: str,
        reference: Optional[str] = None,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> GatewayOrder:
        booking = self._load(booking_id)
        if not can_access(booking, user_id=user_id, email=email):
            self._audit(
                AuditAction.UNAUTHORIZED_ACCESS_ATTEMPT,
                user_id or email or "anonymous",
                Severity.WARNING,
                booking_id=booking_id,
            )
            raise BookingAccessDenied("You do not have access to this booking")
        if not booking.is_payable:
            raise BookingNotPayable("This booking is not awaiting payment")

        if to_money(amount) != booking.total_amount_due or currency.upper() != booking.currency:
            logger.warning(
                f"Order request for {booking_id} asked {amount} {currency}, "
                f"booking total is {booking.total_amount_due} {booking.currency}"
            )
            raise BookingValidationError(["Payment amount does not match the booking total"])

        order = self.gateway.create_order(
            to_minor_units(booking.total_amount_due),
            booking.currency,
            reference or booking.booking_reference,
            notes={
                "booking_id": booking.booking_id,
                "booking_reference": booking.booking_reference,
            },
        )
        self.payment_repo.add_attempt(
            PaymentAttempt(
                booking_id=booking_id,
                order_id=order.order_id,
                amount=booking.total_amount_due,
                currency=booking.currency,
            )
        )
        self._audit(
            AuditAction.PAYMENT_INITIATED,
            booking_id,
            order_id=order.order_id,
            amount_minor=order.amount_minor,
        )
        return order

    def _reject_signature(self, booking_id: str, order_id: str, payment_id: str):
        if self.audit_service:
            self.audit_service.signature_failed(booking_id, order_id, payment_id)
        self.payment_repo.update_attempt_status(
            booking_id,
            order_id,
            AttemptStatus.FAILED,
            failure_code="SIGNATURE_MISMATCH",
            failure_description="Payment signature did not match",
        )
        if self.rate_limit_service and self.rate_limit_service.record_signature_failure(
            booking_id
        ):
            if self.audit_service:
                self.audit_service.suspicious_activity(
                    booking_id,
                    "repeated payment signature failures",
                    order_id=order_id,
                )

    def on_gateway_success(
        self, booking_id: str, payment_id: str, order_id: str, signature: str
    ) -> VerificationResult:
        if not self.gateway.verify_signature(order_id, payment_id, signature):
            logger.warning(f"Signature mismatch for booking {booking_id}, order {order_id}")
            self._reject_signature(booking_id, order_id, payment_id)
            raise SignatureVerificationError(
                "Payment verification failed. Please contact support if money was deducted."
            )

        booking = self._load(booking_id)
        if booking.payment_status is PaymentStatus.PAID:
            if booking.payment_id == payment_id:
                logger.info(f"Payment {payment_id} already confirmed booking {booking_id}")
                return VerificationResult(
                    booking_id, payment_id, PaymentStage.VERIFIED, already_confirmed=True
                )
            self._audit(
                AuditAction.SUSPICIOUS_ACTIVITY,
                booking_id,
                Severity.CRITICAL,
                reason="second payment for a paid booking",
                payment_id=payment_id,
                order_id=order_id,
            )
            raise PaymentVerificationError("This booking has already been paid")
        if not booking.is_payable:
            raise BookingNotPayable("This booking is not awaiting payment")

        if self.payment_repo.get_attempt(booking_id, order_id) is None:
            logger.warning(f"Order {order_id} was never issued for booking {booking_id}")
            self._audit(
                AuditAction.SUSPICIOUS_ACTIVITY,
                booking_id,
                Severity.CRITICAL,
                reason="payment for an order issued to another booking",
                payment_id=payment_id,
                order_id=order_id,
            )
            raise PaymentVerificationError("We could not verify this payment with the gateway")

        gateway_payment = self.gateway.fetch_payment(payment_id)
        expected_minor = to_minor_units(booking.total_amount_due)
        problems = []
        if gateway_payment.status != CAPTURED:
            problems.append(f"status {gateway_payment.status}")
        if gateway_payment.amount_minor != expected_minor:
            problems.append(f"amount {gateway_payment.amount_minor} != {expected_minor}")
        if gateway_payment.currency != booking.currency:
            problems.append(f"currency {gateway_payment.currency} != {booking.currency}")
        if gateway_payment.order_id != order_id:
            problems.append(f"order {gateway_payment.order_id} != {order_id}")
        if problems:
            logger.error(f"Payment {payment_id} for booking {booking_id} rejected: {problems}")
            self.payment_repo.update_attempt_status(
                booking_id,
                order_id,
                AttemptStatus.FAILED,
                failure_code="VERIFICATION_FAILED",
                failure_description="; ".join(problems),
            )
            self._audit(
                AuditAction.PAYMENT_FAILED,
                booking_id,
                Severity.WARNING,
                payment_id=payment_id,
                order_id=order_id,
                problems=problems,
            )
            raise PaymentVerificationError("We could not verify this payment with the gateway")

        payment = Payment(
            transaction_id=payment_id,
            booking_id=booking_id,
            order_id=order_id,
            amount=booking.total_amount_due,
            currency=booking.currency,
            method=gateway_payment.method,
            status=PaymentRecordStatus.SUCCESSFUL,
        )
        if not self.booking_repo.confirm_payment(booking, payment):
            current = self.booking_repo.get_booking_by_id(booking_id)
            if (
                current is not None
                and current.payment_status is PaymentStatus.PAID
                and current.payment_id == payment_id
            ):
                return VerificationResult(
                    booking_id, payment_id, PaymentStage.VERIFIED, already_confirmed=True
                )
            raise PaymentVerificationError("Payment could not be applied to this booking")

        self._after_confirmation(booking, order_id)
        self._audit(
            AuditAction.PAYMENT_VERIFIED,
            booking_id,
            payment_id=payment_id,
            order_id=order_id,
        )

        confirmed = replace(
            booking,
            status=BookingStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
            payment_id=payment_id,
            amount_paid=payment.amount,
            confirmed_at=payment.processed_at,
        )
        self._send_confirmation(confirmed)
        return VerificationResult(booking_id, payment_id, PaymentStage.VERIFIED)

    def _after_confirmation(self, booking: Booking, order_id: str):
        # booking is Paid by now; failures below are only logged
        try:
            self.payment_repo.update_attempt_status(
                booking.booking_id, order_id, AttemptStatus.COMPLETED
            )
        except ClientError:
            logger.exception(f"Could not complete attempt {order_id} for {booking.booking_id}")
        if not (booking.discount_code and self.discount_service):
            return
        try:
            self.discount_service.record_usage(booking.discount_code)
        except ClientError:
            logger.exception(
                f"Usage of discount {booking.discount_code} for booking "
                f"{booking.booking_id} was not recorded"
            )

    def _send_confirmation(self, booking: Booking):
        if not self.confirmation_service:
            return
        try:
            self.confirmation_service.send_confirmation(booking)
        except ClientError:
            logger.exception(f"Confirmation email for booking {booking.booking_id} failed")

    def on_gateway_failure(
        self,
        booking_id: str,
        order_id: str,
        code: str,
        description: Optional[str] = None,
    ) -> FailureOutcome:
        """Records a failed or cancelled checkout; the booking stays payable."""
        booking = self._load(booking_id)

        if code == PAYMENT_CANCELLED_CODE:
            if not self.payment_repo.update_attempt_status(
                booking_id, order_id, AttemptStatus.CANCELLED, code, description
            ):
                raise NotFoundException("payment attempt", order_id, 404)
            self._audit(AuditAction.PAYMENT_CANCELLED, booking_id, order_id=order_id)
            return FailureOutcome(
                booking_id, order_id, PaymentStage.GATEWAY_CANCELLED, CANCELLED_MESSAGE
            )

        if not self.payment_repo.update_attempt_status(
            booking_id, order_id, AttemptStatus.FAILED, code, description
        ):
            raise NotFoundException("payment attempt", order_id, 404)
        self.payment_repo.add_failed_payment(
            Payment(
                transaction_id=f"failed_{order_id}",
                booking_id=booking_id,
                order_id=order_id,
                amount=booking.total_amount_due,
                currency=booking.currency,
                method="unknown",
                status=PaymentRecordStatus.FAILED,
                failure_reason=f"{code}: {description}" if description else code,
            )
        )
        self._audit(
            AuditAction.PAYMENT_FAILED,
            booking_id,
            Severity.WARNING,
            order_id=order_id,
            error_code=code,
        )
        return FailureOutcome(booking_id, order_id, PaymentStage.GATEWAY_FAILED, FAILED_MESSAGE)
