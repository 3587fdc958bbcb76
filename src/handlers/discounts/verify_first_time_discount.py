import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError
from pydantic import ValidationError

from common.repository.booking_repo import BookingRepository
from common.repository.discount_repo import DiscountRepository
from common.schemas.discounts import FirstTimeVerificationRequest
from common.services.discount_service import DiscountService
from common.utils.constants import FIRST_TIME_CODE
from common.utils.custom_response import (
    format_validation_error,
    send_custom_response,
    send_error_response,
)

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

discount_service = DiscountService(
    discount_repo=DiscountRepository(table), booking_repo=BookingRepository(table)
)


def verify_first_time_discount(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        req = FirstTimeVerificationRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, format_validation_error(e))

    try:
        eligible = discount_service.verify_first_time_eligibility(req.email)
    except ClientError as err:
        return send_error_response(err)

    if not eligible:
        return send_custom_response(
            200,
            "This email already has bookings; you are not eligible for the first-time discount",
            {"eligible": False},
        )
    return send_custom_response(
        200,
        "Email verified for the first-time discount",
        {"eligible": True, "code": FIRST_TIME_CODE},
    )
