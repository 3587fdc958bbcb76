import logging
import os
from boto3 import resource
from botocore.exceptions import ClientError

from common.repository.booking_repo import BookingRepository
from common.repository.catalog_repo import CatalogRepository
from common.repository.discount_repo import DiscountRepository
from common.repository.pricing_repo import PricingRepository
from common.services.booking_service import BookingService
from common.services.discount_service import DiscountService
from common.services.pricing_service import PricingService
from common.utils.custom_exceptions import NotFoundException

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
)


def expire_booking(event, context):
    """EventBridge Scheduler target; cancels the booking if it is still unpaid."""
    booking_id = event.get("booking_id")
    if not booking_id:
        raise KeyError("Missing booking_id in event")

    try:
        expired = booking_service.expire_unpaid_booking(booking_id)
    except NotFoundException as err:
        logger.warning(f"Expiry skipped: {err}")
        return {"booking_id": booking_id, "expired": False}
    except ClientError:
        logger.exception(f"Expiry failed for booking {booking_id}")
        raise

    return {"booking_id": booking_id, "expired": expired}
