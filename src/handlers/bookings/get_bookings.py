import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError

from common.repository.audit_repo import AuditRepository
from common.repository.booking_repo import BookingRepository
from common.repository.catalog_repo import CatalogRepository
from common.repository.discount_repo import DiscountRepository
from common.repository.pricing_repo import PricingRepository
from common.services.audit_service import AuditService
from common.services.booking_service import BookingService
from common.services.discount_service import DiscountService
from common.services.pricing_service import PricingService
from common.utils.custom_exceptions import BookingAccessDenied, NotFoundException
from common.utils.custom_response import send_custom_response, send_error_response
from common.utils.error_messages import GENERIC_MESSAGE
from common.utils.serializers import booking_to_dict

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

booking_repo = BookingRepository(table)
catalog_repo = CatalogRepository(table)

booking_service = BookingService(
    booking_repo=booking_repo,
    catalog_repo=catalog_repo,
    pricing_service=PricingService(catalog_repo, PricingRepository(table)),
    discount_service=DiscountService(DiscountRepository(table), booking_repo),
    audit_service=AuditService(AuditRepository(table)),
)


def get_bookings(event, context):
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    user_id = authorizer.get("user_id")
    path_params = event.get("pathParameters") or {}
    params = event.get("queryStringParameters") or {}
    booking_id = path_params.get("booking_id")

    try:
        if booking_id:
            # guests prove ownership with the email used at checkout
            booking = booking_service.get_booking(
                booking_id, user_id=user_id, email=params.get("email")
            )
            return send_custom_response(
                200, "Booking retrieved successfully", booking_to_dict(booking)
            )

        if not user_id:
            return send_custom_response(401, "Unauthorized")

        bookings = booking_service.get_user_bookings(user_id)
        email = authorizer.get("email")
        if email:
            # guest checkouts made with the account email belong to the user too
            seen = {b.booking_id for b in bookings}
            bookings += [
                b for b in booking_service.get_guest_bookings(email) if b.booking_id not in seen
            ]
        result = [booking_to_dict(b) for b in bookings]
        return send_custom_response(
            200,
            "Bookings retrieved successfully",
            {"count": len(result), "bookings": result},
        )

    except (NotFoundException, BookingAccessDenied, ClientError) as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error in get_bookings")
        return send_custom_response(500, GENERIC_MESSAGE)
