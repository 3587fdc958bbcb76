import logging
import os
from boto3 import resource
from pydantic import ValidationError

from common.repository.audit_repo import AuditRepository
from common.repository.booking_repo import BookingRepository
from common.repository.catalog_repo import CatalogRepository
from common.repository.discount_repo import DiscountRepository
from common.repository.pricing_repo import PricingRepository
from common.schemas.bookings import BookingRequest
from common.services.audit_service import AuditService
from common.services.availability_service import AvailabilityService
from common.services.booking_service import BookingService
from common.services.discount_service import DiscountService
from common.services.pricing_service import PricingService
from common.services.schedule_service import SchedulerService
from common.utils.custom_exceptions import (
    AvailabilityCheckError,
    AvailabilityConflict,
    BookingValidationError,
    NotFoundException,
    PersistenceError,
    PriceCalculationError,
)
from common.utils.custom_response import (
    format_validation_error,
    send_custom_response,
    send_error_response,
)
from common.utils.error_messages import GENERIC_MESSAGE
from common.utils.serializers import breakdown_to_dict

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")
EXPIRE_BOOKING_LAMBDA_ARN = os.environ.get("EXPIRE_BOOKING_LAMBDA_ARN")
SCHEDULER_ROLE_ARN = os.environ.get("SCHEDULER_ROLE_ARN")
PENDING_BOOKING_TTL_MINUTES = os.environ.get("PENDING_BOOKING_TTL_MINUTES")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

booking_repo = BookingRepository(table)
catalog_repo = CatalogRepository(table)

scheduler_service = None
if PENDING_BOOKING_TTL_MINUTES and EXPIRE_BOOKING_LAMBDA_ARN and SCHEDULER_ROLE_ARN:
    scheduler_service = SchedulerService(
        EXPIRE_BOOKING_LAMBDA_ARN, SCHEDULER_ROLE_ARN, region=AWS_REGION
    )

booking_service = BookingService(
    booking_repo=booking_repo,
    catalog_repo=catalog_repo,
    pricing_service=PricingService(catalog_repo, PricingRepository(table)),
    discount_service=DiscountService(DiscountRepository(table), booking_repo),
    availability_service=AvailabilityService(booking_repo, catalog_repo),
    audit_service=AuditService(AuditRepository(table)),
    schedule_service=scheduler_service,
    pending_ttl_minutes=int(PENDING_BOOKING_TTL_MINUTES) if scheduler_service else None,
)


def create_booking(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        request_body = BookingRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, format_validation_error(e))

    try:
        authorizer = event["requestContext"]["authorizer"]
        user_id = authorizer["user_id"]
    except (KeyError, TypeError):
        return send_custom_response(401, "Unauthorized")

    try:
        result = booking_service.create_booking(
            request_body, user_id, user_email=authorizer.get("email") or None
        )
        return send_custom_response(
            201,
            "Booking created successfully",
            {
                "booking_id": result.booking_id,
                "booking_reference": result.booking_reference,
                "price_breakdown": breakdown_to_dict(result.price_breakdown),
            },
        )

    except (
        BookingValidationError,
        AvailabilityConflict,
        AvailabilityCheckError,
        NotFoundException,
        PriceCalculationError,
        PersistenceError,
    ) as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error in create_booking")
        return send_custom_response(500, GENERIC_MESSAGE)
