import logging
import os
from datetime import date
from boto3 import resource

from common.repository.booking_repo import BookingRepository
from common.repository.catalog_repo import CatalogRepository
from common.services.availability_service import AvailabilityService
from common.utils.custom_exceptions import (
    AvailabilityCheckError,
    InvalidDates,
    NotFoundException,
)
from common.utils.custom_response import send_custom_response, send_error_response
from common.utils.error_messages import GENERIC_MESSAGE

logger = logging.getLogger()
logger.setLevel(logging.INFO)

TABLE_NAME = os.environ.get("TABLE_NAME")
AWS_REGION = os.environ.get("AWS_REGION", "ap-south-1")

dynamodb = resource("dynamodb", region_name=AWS_REGION)
table = dynamodb.Table(TABLE_NAME)

booking_repo = BookingRepository(table)
catalog_repo = CatalogRepository(table)
availability_service = AvailabilityService(booking_repo=booking_repo, catalog_repo=catalog_repo)


def check_availability(event, context):
    params = event.get("queryStringParameters") or {}
    property_id = params.get("property_id")
    instance_id = params.get("instance_id")

    try:
        if property_id:
            check_in_raw = params.get("check_in")
            check_out_raw = params.get("check_out")
            if not check_in_raw or not check_out_raw:
                return send_custom_response(400, "check_in and check_out are required")
            try:
                check_in = date.fromisoformat(check_in_raw)
                check_out = date.fromisoformat(check_out_raw)
            except ValueError:
                return send_custom_response(400, "Dates must be in YYYY-MM-DD format")

            available = availability_service.check_property_availability(
                property_id, check_in, check_out
            )
            return send_custom_response(
                200,
                "Availability checked",
                {
                    "property_id": property_id,
                    "check_in": check_in.isoformat(),
                    "check_out": check_out.isoformat(),
                    "available": available,
                },
            )

        if instance_id:
            try:
                attendees = int(params.get("attendees", "1"))
            except ValueError:
                return send_custom_response(400, "attendees must be a number")
            if attendees < 1:
                return send_custom_response(400, "attendees must be at least 1")

            available = availability_service.check_experience_instance_availability(
                instance_id, attendees
            )
            return send_custom_response(
                200,
                "Availability checked",
                {"instance_id": instance_id, "attendees": attendees, "available": available},
            )

        return send_custom_response(400, "property_id or instance_id is required")

    except (NotFoundException, InvalidDates, AvailabilityCheckError) as err:
        return send_error_response(err)

    except Exception:
        logger.exception("Unhandled error in check_availability")
        return send_custom_response(500, GENERIC_MESSAGE)
