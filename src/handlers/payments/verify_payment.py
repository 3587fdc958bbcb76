import logging
import os
from boto3 import resource
from pydantic import ValidationError

from common.repository.audit_repo import AuditRepository
from common.repository.booking_repo import BookingRepository
from common.repository.discount_repo import DiscountRepository
from common.repository.payment_repo import PaymentRepository
from common.repository.rate_limit_repo import RateLimitRepository
from common.schemas.payments import VerifyPaymentRequest
from common.services.audit_service import AuditService
from common.services.confirmation_service import ConfirmationService
from common.services.discount_service import DiscountService
from common.services.payment_service import PaymentService
from common.services.rate_limit_service import RateLimitService
from common.services.razorpay_gateway import RazorpayGateway
from common.utils.custom_exceptions import (
    BookingNotPayable,
    GatewayError,
    NotFoundException,
    PaymentVerificationError,
    SignatureVerificationError,
)
from common.utils.custom_response import (
    format_validation_error,
    send_custom_response,
    send_error_response,
)
from common.utils.error_messages import GENERIC_MESSAGE

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")
RAZORPAY_KEY_ID = os.environ.get("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.environ.get("RAZORPAY_KEY_SECRET")
CONFIRMATION_SENDER_EMAIL = os.environ.get("CONFIRMATION_SENDER_EMAIL")

if not RAZORPAY_KEY_ID or not RAZORPAY_KEY_SECRET:
    raise RuntimeError("Razorpay credentials are not configured")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

booking_repo = BookingRepository(table)
audit_service = AuditService(AuditRepository(table))
confirmation_service = None
if CONFIRMATION_SENDER_EMAIL:
    confirmation_service = ConfirmationService(CONFIRMATION_SENDER_EMAIL, region=AWS_REGION)

payment_service = PaymentService(
    booking_repo=booking_repo,
    payment_repo=PaymentRepository(table),
    gateway=RazorpayGateway(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET),
    discount_service=DiscountService(DiscountRepository(table), booking_repo),
    audit_service=audit_service,
    rate_limit_service=RateLimitService(RateLimitRepository(table), audit_service),
    confirmation_service=confirmation_service,
)


def verify_payment(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        req = VerifyPaymentRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, format_validation_error(e))

    try:
        result = payment_service.on_gateway_success(
            req.booking_id,
            req.razorpay_payment_id,
            req.razorpay_order_id,
            req.razorpay_signature,
        )
        message = (
            "Payment already verified" if result.already_confirmed else "Payment verified"
        )
        return send_custom_response(
            200,
            message,
            {
                "booking_id": result.booking_id,
                "payment_id": result.payment_id,
                "status": result.stage.value,
                "already_confirmed": result.already_confirmed,
            },
        )

    except (
        SignatureVerificationError,
        PaymentVerificationError,
        BookingNotPayable,
        NotFoundException,
        GatewayError,
    ) as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error in verify_payment")
        return send_custom_response(500, GENERIC_MESSAGE)
