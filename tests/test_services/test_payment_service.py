import hashlib
import hmac
import unittest
from unittest.mock import MagicMock
from datetime import date
from decimal import Decimal
from botocore.exceptions import ClientError

from common.models.audit import AuditAction
from common.models.bookings import (
    Booking,
    BookingStatus,
    BookingType,
    GuestContact,
    PaymentStatus,
    PropertyStay,
)
from common.models.payments import (
    AttemptStatus,
    GatewayOrder,
    GatewayPayment,
    PaymentAttempt,
    PaymentRecordStatus,
    PaymentStage,
)
from common.models.pricing import PriceBreakdown
from common.services.payment_service import PaymentService
from common.utils.custom_exceptions import (
    BookingAccessDenied,
    BookingNotPayable,
    BookingValidationError,
    NotFoundException,
    PaymentVerificationError,
    SignatureVerificationError,
)

SECRET = "rzp_test_secret"


def sign(order_id, payment_id, secret=SECRET):
    return hmac.new(
        secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256
    ).hexdigest()


def make_booking(**overrides):
    values = dict(
        booking_id="b1",
        booking_reference="BK-261019-0K3FQ7ZA",
        booking_type=BookingType.PROPERTY,
        price_breakdown=PriceBreakdown(
            base_price=Decimal("12000.00"),
            discount_amount=Decimal("0.00"),
            subtotal_after_discount=Decimal("12000.00"),
            tax_amount=Decimal("2160.00"),
            cgst=Decimal("1080.00"),
            sgst=Decimal("1080.00"),
            igst=Decimal("0"),
            total_amount_due=Decimal("14160.00"),
            nights=3,
        ),
        guest=GuestContact("Asha Rao", "asha@example.com", "+919876543210"),
        stay=PropertyStay("p1", date(2026, 11, 1), date(2026, 11, 4), 2),
    )
    values.update(overrides)
    return Booking(**values)


def paid(booking, payment_id="pay_1"):
    return make_booking(
        status=BookingStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
        payment_id=payment_id,
        amount_paid=booking.total_amount_due,
    )


class TestPaymentService(unittest.TestCase):

    def setUp(self):
        self.booking_repo = MagicMock()
        self.payment_repo = MagicMock()
        self.gateway = MagicMock()
        self.discount_service = MagicMock()
        self.audit_service = MagicMock()
        self.rate_limit_service = MagicMock()
        self.confirmation_service = MagicMock()

        self.booking = make_booking()
        self.booking_repo.get_booking_by_id.return_value = self.booking
        self.booking_repo.confirm_payment.return_value = True
        self.payment_repo.update_attempt_status.return_value = True
        self.rate_limit_service.record_signature_failure.return_value = False
        self.gateway.fetch_payment.return_value = GatewayPayment(
            "pay_1", "order_1", "captured", 1416000, "INR", "upi"
        )
        self.gateway.verify_signature.side_effect = (
            lambda order_id, payment_id, signature: signature == sign(order_id, payment_id)
        )
        self.payment_repo.get_attempt.return_value = PaymentAttempt(
            "b1", "order_1", Decimal("14160.00"), "INR"
        )

        self.service = PaymentService(
            self.booking_repo,
            self.payment_repo,
            self.gateway,
            discount_service=self.discount_service,
            audit_service=self.audit_service,
            rate_limit_service=self.rate_limit_service,
            confirmation_service=self.confirmation_service,
        )

    def test_initiate_creates_order_for_stored_total(self):
        self.gateway.create_order.return_value = GatewayOrder(
            "order_1", 1416000, "INR", "rzp_test_key", "BK-261019-0K3FQ7ZA"
        )

        order = self.service.initiate("b1", Decimal("14160"), "inr", email="asha@example.com")

        self.assertEqual("order_1", order.order_id)
        self.gateway.create_order.assert_called_once_with(
            1416000,
            "INR",
            "BK-261019-0K3FQ7ZA",
            notes={"booking_id": "b1", "booking_reference": "BK-261019-0K3FQ7ZA"},
        )
        attempt = self.payment_repo.add_attempt.call_args.args[0]
        self.assertEqual("order_1", attempt.order_id)
        self.assertEqual(AttemptStatus.INITIATED, attempt.status)

    def test_initiate_rejects_tampered_amount(self):
        with self.assertRaises(BookingValidationError):
            self.service.initiate("b1", Decimal("100"), "INR", email="asha@example.com")
        self.gateway.create_order.assert_not_called()

    def test_initiate_checks_ownership(self):
        with self.assertRaises(BookingAccessDenied):
            self.service.initiate("b1", Decimal("14160"), "INR", email="eve@example.com")
        self.gateway.create_order.assert_not_called()
        self.audit_service.log.assert_called_once()

    def test_initiate_paid_booking(self):
        self.booking_repo.get_booking_by_id.return_value = paid(self.booking)
        with self.assertRaises(BookingNotPayable):
            self.service.initiate("b1", Decimal("14160"), "INR", email="asha@example.com")

    def test_verified_payment_confirms_booking(self):
        result = self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_1"))

        self.assertEqual(PaymentStage.VERIFIED, result.stage)
        self.assertFalse(result.already_confirmed)
        booking, payment = self.booking_repo.confirm_payment.call_args.args
        self.assertIs(self.booking, booking)
        self.assertEqual("pay_1", payment.transaction_id)
        self.assertEqual(Decimal("14160.00"), payment.amount)
        self.assertEqual("upi", payment.method)
        self.assertEqual(PaymentRecordStatus.SUCCESSFUL, payment.status)
        self.payment_repo.update_attempt_status.assert_called_once_with(
            "b1", "order_1", AttemptStatus.COMPLETED
        )
        sent = self.confirmation_service.send_confirmation.call_args.args[0]
        self.assertEqual(BookingStatus.CONFIRMED, sent.status)
        self.assertEqual("pay_1", sent.payment_id)

    def test_replayed_callback_is_a_no_op(self):
        signature = sign("order_1", "pay_1")
        self.service.on_gateway_success("b1", "pay_1", "order_1", signature)
        self.booking_repo.get_booking_by_id.return_value = paid(self.booking)

        result = self.service.on_gateway_success("b1", "pay_1", "order_1", signature)

        self.assertTrue(result.already_confirmed)
        self.booking_repo.confirm_payment.assert_called_once()
        self.confirmation_service.send_confirmation.assert_called_once()

    def test_concurrent_confirmation_is_reported_as_already_confirmed(self):
        self.booking_repo.confirm_payment.return_value = False
        self.booking_repo.get_booking_by_id.side_effect = [self.booking, paid(self.booking)]

        result = self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_1"))

        self.assertTrue(result.already_confirmed)
        self.confirmation_service.send_confirmation.assert_not_called()

    def test_tampered_signature_never_confirms(self):
        with self.assertRaises(SignatureVerificationError):
            self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_2"))

        self.booking_repo.confirm_payment.assert_not_called()
        self.gateway.fetch_payment.assert_not_called()
        self.audit_service.signature_failed.assert_called_once_with("b1", "order_1", "pay_1")
        self.payment_repo.update_attempt_status.assert_called_once_with(
            "b1",
            "order_1",
            AttemptStatus.FAILED,
            failure_code="SIGNATURE_MISMATCH",
            failure_description="Payment signature did not match",
        )
        self.audit_service.suspicious_activity.assert_not_called()

    def test_repeated_signature_failures_flagged(self):
        self.rate_limit_service.record_signature_failure.return_value = True

        with self.assertRaises(SignatureVerificationError):
            self.service.on_gateway_success("b1", "pay_1", "order_1", "")

        self.audit_service.suspicious_activity.assert_called_once()

    def test_gateway_amount_mismatch(self):
        self.gateway.fetch_payment.return_value = GatewayPayment(
            "pay_1", "order_1", "captured", 100, "INR", "card"
        )

        with self.assertRaises(PaymentVerificationError):
            self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_1"))

        self.booking_repo.confirm_payment.assert_not_called()
        _, kwargs = self.payment_repo.update_attempt_status.call_args
        self.assertEqual("VERIFICATION_FAILED", kwargs["failure_code"])

    def test_uncaptured_payment(self):
        self.gateway.fetch_payment.return_value = GatewayPayment(
            "pay_1", "order_1", "authorized", 1416000, "INR", "card"
        )
        with self.assertRaises(PaymentVerificationError):
            self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_1"))

    def test_second_payment_for_paid_booking(self):
        self.booking_repo.get_booking_by_id.return_value = paid(self.booking, "pay_1")

        with self.assertRaises(PaymentVerificationError):
            self.service.on_gateway_success("b1", "pay_9", "order_2", sign("order_2", "pay_9"))

        self.booking_repo.confirm_payment.assert_not_called()

    def test_discount_usage_recorded_on_confirmation(self):
        self.booking_repo.get_booking_by_id.return_value = make_booking(discount_code="FIRSTTIME250")

        self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_1"))

        self.discount_service.record_usage.assert_called_once_with("FIRSTTIME250")

    def test_order_from_another_booking_is_rejected(self):
        other = make_booking(booking_id="b2", booking_reference="BK-261019-0K3FQ7ZB")
        self.booking_repo.get_booking_by_id.return_value = other
        self.payment_repo.get_attempt.return_value = None
        self.gateway.fetch_payment.return_value = GatewayPayment(
            "pay_1", "order_for_b1", "captured", 1416000, "INR", "upi"
        )

        with self.assertRaises(PaymentVerificationError):
            self.service.on_gateway_success(
                "b2", "pay_1", "order_for_b1", sign("order_for_b1", "pay_1")
            )

        self.payment_repo.get_attempt.assert_called_once_with("b2", "order_for_b1")
        self.gateway.fetch_payment.assert_not_called()
        self.booking_repo.confirm_payment.assert_not_called()
        action = self.audit_service.log.call_args.args[0]
        self.assertEqual(AuditAction.SUSPICIOUS_ACTIVITY, action)

    def test_discount_usage_failure_keeps_payment_verified(self):
        self.booking_repo.get_booking_by_id.return_value = make_booking(discount_code="FIRSTTIME250")
        self.discount_service.record_usage.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "UpdateItem"
        )

        result = self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_1"))

        self.assertEqual(PaymentStage.VERIFIED, result.stage)
        self.assertFalse(result.already_confirmed)
        self.confirmation_service.send_confirmation.assert_called_once()

    def test_attempt_update_failure_keeps_payment_verified(self):
        self.payment_repo.update_attempt_status.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "UpdateItem"
        )

        result = self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_1"))

        self.assertEqual(PaymentStage.VERIFIED, result.stage)
        self.booking_repo.confirm_payment.assert_called_once()

    def test_confirmation_email_failure_does_not_fail_payment(self):
        self.confirmation_service.send_confirmation.side_effect = ClientError(
            {"Error": {"Code": "MessageRejected", "Message": "nope"}}, "SendRawEmail"
        )

        result = self.service.on_gateway_success("b1", "pay_1", "order_1", sign("order_1", "pay_1"))

        self.assertEqual(PaymentStage.VERIFIED, result.stage)

    def test_cancelled_checkout(self):
        outcome = self.service.on_gateway_failure("b1", "order_1", "PAYMENT_CANCELLED")

        self.assertEqual(PaymentStage.GATEWAY_CANCELLED, outcome.stage)
        self.assertTrue(outcome.retryable)
        self.payment_repo.update_attempt_status.assert_called_once_with(
            "b1", "order_1", AttemptStatus.CANCELLED, "PAYMENT_CANCELLED", None
        )
        self.payment_repo.add_failed_payment.assert_not_called()

    def test_failed_checkout_records_payment(self):
        outcome = self.service.on_gateway_failure(
            "b1", "order_1", "BAD_REQUEST_ERROR", "Card declined"
        )

        self.assertEqual(PaymentStage.GATEWAY_FAILED, outcome.stage)
        payment = self.payment_repo.add_failed_payment.call_args.args[0]
        self.assertEqual("failed_order_1", payment.transaction_id)
        self.assertEqual(PaymentRecordStatus.FAILED, payment.status)
        self.assertEqual("BAD_REQUEST_ERROR: Card declined", payment.failure_reason)
        self.booking_repo.confirm_payment.assert_not_called()

    def test_failure_for_unknown_attempt(self):
        self.payment_repo.update_attempt_status.return_value = False
        with self.assertRaises(NotFoundException):
            self.service.on_gateway_failure("b1", "order_x", "BAD_REQUEST_ERROR")


if __name__ == "__main__":
    unittest.main()
