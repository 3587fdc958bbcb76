import logging
import os
from boto3 import resource
from pydantic import ValidationError

from common.repository.audit_repo import AuditRepository
from common.repository.booking_repo import BookingRepository
from common.repository.payment_repo import PaymentRepository
from common.schemas.payments import CreateOrderRequest
from common.services.audit_service import AuditService
from common.services.payment_service import PaymentService
from common.services.razorpay_gateway import RazorpayGateway
from common.utils.custom_exceptions import (
    BookingAccessDenied,
    BookingNotPayable,
    BookingValidationError,
    GatewayError,
    NotFoundException,
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

if not RAZORPAY_KEY_ID or not RAZORPAY_KEY_SECRET:
    raise RuntimeError("Razorpay credentials are not configured")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

payment_service = PaymentService(
    booking_repo=BookingRepository(table),
    payment_repo=PaymentRepository(table),
    gateway=RazorpayGateway(RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET),
    audit_service=AuditService(AuditRepository(table)),
)


def create_order(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        req = CreateOrderRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, format_validation_error(e))

    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    user_id = authorizer.get("user_id")
    if not user_id and not req.guest_email:
        return send_custom_response(401, "Sign in or provide the email used for this booking")

    try:
        order = payment_service.initiate(
            req.booking_id,
            req.amount,
            req.currency,
            req.receipt,
            user_id=user_id,
            email=req.guest_email,
        )
        return send_custom_response(
            200,
            "Order created",
            {
                "order_id": order.order_id,
                "key": order.gateway_key,
                "amount": order.amount_minor,
                "currency": order.currency,
            },
        )

    except (
        NotFoundException,
        BookingAccessDenied,
        BookingNotPayable,
        BookingValidationError,
        GatewayError,
    ) as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error in create_order")
        return send_custom_response(500, GENERIC_MESSAGE)
