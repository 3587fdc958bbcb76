import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError
from pydantic import ValidationError

from common.repository.audit_repo import AuditRepository
from common.repository.booking_repo import BookingRepository
from common.repository.payment_repo import PaymentRepository
from common.schemas.payments import PaymentFailureRequest
from common.services.audit_service import AuditService
from common.services.payment_service import PaymentService
from common.services.razorpay_gateway import RazorpayGateway
from common.utils.custom_exceptions import NotFoundException
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


def payment_failure(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        req = PaymentFailureRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, format_validation_error(e))

    try:
        outcome = payment_service.on_gateway_failure(
            req.booking_id,
            req.razorpay_order_id,
            req.error_code,
            req.error_description,
        )
        return send_custom_response(
            200,
            outcome.message,
            {
                "booking_id": outcome.booking_id,
                "order_id": outcome.order_id,
                "status": outcome.stage.value,
                "retryable": outcome.retryable,
            },
        )

    except (NotFoundException, ClientError) as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error in payment_failure")
        return send_custom_response(500, GENERIC_MESSAGE)
