from botocore.exceptions import ClientError
import logging
from datetime import date

from common.models.bookings import ACTIVE_STATUSES
from common.repository.booking_repo import BookingRepository
from common.repository.catalog_repo import CatalogRepository
from common.utils.custom_exceptions import (
    AvailabilityCheckError,
    InvalidDates,
    NotFoundException,
)

logger = logging.getLogger(__name__)


class AvailabilityService:
    def __init__(self, booking_repo: BookingRepository, catalog_repo: CatalogRepository):
        self.booking_repo = booking_repo
        self.catalog_repo = catalog_repo

    def check_property_availability(
        self, property_id: str, check_in: date, check_out: date
    ) -> bool:
        if check_out <= check_in:
            raise InvalidDates("check-out must be after check-in")

        try:
            stays = self.booking_repo.get_property_stays(property_id, check_in, check_out)
        except ClientError as err:
            logger.error(f"Availability lookup failed for property {property_id}: {err}")
            raise AvailabilityCheckError("availability check failed") from err

        for stay in stays:
            if stay.status not in ACTIVE_STATUSES:
                continue
            if stay.check_in < check_out and stay.check_out > check_in:
                return False
        return True

    def check_experience_instance_availability(
        self, instance_id: str, attendee_count: int
    ) -> bool:
        try:
            instance = self.catalog_repo.get_instance(instance_id)
        except ClientError as err:
            logger.error(f"Availability lookup failed for instance {instance_id}: {err}")
            raise AvailabilityCheckError("availability check failed") from err

        if instance is None:
            raise NotFoundException("experience instance", instance_id, 404)
        return instance.current_attendees + attendee_count <= instance.max_capacity
