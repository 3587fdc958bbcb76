import logging
import os
from boto3 import resource
from pydantic import ValidationError

from common.models.bookings import BookingType
from common.repository.booking_repo import BookingRepository
from common.repository.catalog_repo import CatalogRepository
from common.repository.discount_repo import DiscountRepository
from common.repository.pricing_repo import PricingRepository
from common.schemas.bookings import PriceQuoteRequest
from common.services.booking_service import BookingService
from common.services.discount_service import DiscountService
from common.services.pricing_service import PricingService
from common.utils.custom_exceptions import (
    BookingValidationError,
    InvalidDates,
    NotFoundException,
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

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

booking_repo = BookingRepository(table)
catalog_repo = CatalogRepository(table)
pricing_service = PricingService(catalog_repo=catalog_repo, pricing_repo=PricingRepository(table))
discount_service = DiscountService(
    discount_repo=DiscountRepository(table), booking_repo=booking_repo
)
booking_service = BookingService(
    booking_repo=booking_repo,
    catalog_repo=catalog_repo,
    pricing_service=pricing_service,
    discount_service=discount_service,
)


def _missing_fields(req: PriceQuoteRequest) -> list:
    if req.booking_type is BookingType.PROPERTY:
        required = ("property_id", "check_in", "check_out")
    else:
        required = ("instance_id", "number_of_attendees")
    return [name for name in required if getattr(req, name) is None]


def quote_price(event, context):
    if not event.get("body"):
        return send_custom_response(400, "Request body is required")

    try:
        req = PriceQuoteRequest.model_validate_json(event["body"])
    except ValidationError as e:
        return send_custom_response(400, format_validation_error(e))

    missing = _missing_fields(req)
    if missing:
        return send_custom_response(400, f"Missing required fields: {', '.join(missing)}")

    try:
        breakdown = booking_service.quote(req, email=req.email)
        return send_custom_response(200, "Price calculated", breakdown_to_dict(breakdown))

    except InvalidDates as err:
        return send_error_response(err)

    except PriceCalculationError as err:
        logger.error(f"Price calculation failed: {err}")
        data = None
        if req.booking_type is BookingType.PROPERTY:
            nights = (req.check_out - req.check_in).days
            data = {"estimate": breakdown_to_dict(pricing_service.estimate_fallback_price(nights))}
        return send_custom_response(
            503,
            "We could not calculate the exact price right now. "
            "Any amount shown is an estimate and cannot be paid.",
            data,
        )

    except (NotFoundException, BookingValidationError) as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error in quote_price")
        return send_custom_response(500, GENERIC_MESSAGE)
