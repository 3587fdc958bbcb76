import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError
from pydantic import ValidationError

from common.repository.booking_repo import BookingRepository
from common.repository.discount_repo import DiscountRepository
from common.schemas.discounts import DiscountValidationRequest
from common.services.discount_service import DiscountService
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

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

discount_service = DiscountService(
    discount_repo=DiscountRepository(table), booking_repo=BookingRepository(table)
)


def validate_discount(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        req = DiscountValidationRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, format_validation_error(e))

    try:
        result = discount_service.validate(
            req.code, req.booking_type, req.item_id, req.candidate_total, email=req.email
        )
    except ClientError as err:
        return send_error_response(err)
    except Exception:
        logger.exception("Unhandled error in validate_discount")
        return send_custom_response(500, GENERIC_MESSAGE)

    if not result.is_valid:
        return send_custom_response(
            200, result.error_message, {"is_valid": False, "discount_amount": "0.00"}
        )

    return send_custom_response(
        200,
        "Discount code applied",
        {
            "is_valid": True,
            "code": result.code,
            "discount_type": result.discount_type.value,
            "discount_amount": str(result.discount_amount),
        },
    )
