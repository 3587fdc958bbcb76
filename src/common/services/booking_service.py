from botocore.exceptions import ClientError
import logging
from datetime import date, timedelta
from typing import List, Optional
from uuid import uuid4

from common.models.audit import AuditAction
from common.models.bookings import (
    Booking,
    BookingResult,
    BookingType,
    ExperienceSlot,
    GuestContact,
    PropertyStay,
)
from common.models.pricing import AddonSelection, PriceBreakdown
from common.repository.booking_repo import BookingRepository
from common.repository.catalog_repo import CatalogRepository
from common.schemas.bookings import BookingRequest, GuestBookingRequest
from common.services.availability_service import AvailabilityService
from common.services.discount_service import DiscountService
from common.services.pricing_service import PricingService
from common.services.rate_limit_service import RateLimitService
from common.services.schedule_service import SchedulerService
from common.utils.booking_reference import generate_booking_reference
from common.utils.constants import (
    MAX_ADVANCE_YEARS,
    MAX_ATTENDEES,
    MAX_BOOKING_AMOUNT,
    MAX_GUESTS,
    MAX_STAY,
    SUPPORTED_CURRENCIES,
)
from common.utils.custom_exceptions import (
    AvailabilityConflict,
    BookingAccessDenied,
    BookingValidationError,
    DuplicateReference,
    NotFoundException,
    PersistenceError,
)
from common.utils.datetime_normaliser import utc_now

logger = logging.getLogger(__name__)

MAX_REFERENCE_ATTEMPTS = 3
PERSISTENCE_MESSAGE = "We could not save your booking. Please try again."


def _years_ahead(today: date, years: int) -> date:
    try:
        return today.replace(year=today.year + years)
    except ValueError:
        # 29 February
        return today.replace(year=today.year + years, day=28)


def can_access(booking: Booking, user_id: Optional[str] = None, email: Optional[str] = None) -> bool:
    if booking.user_id:
        return user_id is not None and booking.user_id == user_id
    return (
        email is not None
        and booking.contact_email is not None
        and booking.contact_email == email.strip().lower()
    )


class BookingService:
    def __init__(
        self,
        booking_repo: BookingRepository,
        catalog_repo: CatalogRepository,
        pricing_service: PricingService,
        discount_service: DiscountService,
        availability_service: Optional[AvailabilityService] = None,
        rate_limit_service: Optional[RateLimitService] = None,
        audit_service=None,
        schedule_service: Optional[SchedulerService] = None,
        pending_ttl_minutes: Optional[int] = None,
    ):
        self.booking_repo = booking_repo
        self.catalog_repo = catalog_repo
        self.pricing_service = pricing_service
        self.discount_service = discount_service
        self.availability_service = availability_service
        self.rate_limit_service = rate_limit_service
        self.audit_service = audit_service
        self.schedule_service = schedule_service
        self.pending_ttl_minutes = pending_ttl_minutes

    def validate_request(
        self,
        req: BookingRequest,
        user_id: Optional[str] = None,
        guest: Optional[GuestContact] = None,
        today: Optional[date] = None,
    ) -> List[str]:
        """Returns every rule the request breaks, not just the first."""
        today = today or utc_now().date()
        errors = []

        if bool(user_id) == (guest is not None):
            errors.append("Provide either a signed-in account or guest contact details")

        if req.booking_type is BookingType.PROPERTY:
            if not req.property_id:
                errors.append("Property is required")
            if req.check_in is None or req.check_out is None:
                errors.append("Check-in and check-out dates are required")
            else:
                if req.check_in >= req.check_out:
                    errors.append("Check-out date must be after check-in date")
                elif (req.check_out - req.check_in).days > MAX_STAY:
                    errors.append(f"Maximum stay is {MAX_STAY} nights")
                if req.check_in < today:
                    errors.append("Check-in date cannot be in the past")
                if req.check_in > _years_ahead(today, MAX_ADVANCE_YEARS):
                    errors.append(
                        f"Check-in date cannot be more than {MAX_ADVANCE_YEARS} years in the future"
                    )
            guests = req.number_of_guests if req.number_of_guests is not None else 1
            if not 1 <= guests <= MAX_GUESTS:
                errors.append(f"Number of guests must be between 1 and {MAX_GUESTS}")
        else:
            if not req.instance_id:
                errors.append("Experience instance is required")
            attendees = req.number_of_attendees
            if attendees is None or not 1 <= attendees <= MAX_ATTENDEES:
                errors.append(f"Number of attendees must be between 1 and {MAX_ATTENDEES}")
            if req.addons:
                errors.append("Add-on experiences can only be attached to property stays")

        return errors

    def validate_breakdown(self, breakdown: Optional[PriceBreakdown]) -> List[str]:
        if breakdown is None:
            return ["Price breakdown is required"]
        errors = []
        if breakdown.is_estimate:
            errors.append("Estimated prices cannot be used for a booking")
        if breakdown.total_amount_due <= 0:
            errors.append("Total amount must be greater than zero")
        elif breakdown.total_amount_due > MAX_BOOKING_AMOUNT:
            errors.append(f"Total amount cannot exceed {MAX_BOOKING_AMOUNT}")
        if breakdown.currency not in SUPPORTED_CURRENCIES:
            errors.append(f"Unsupported currency {breakdown.currency}")
        return errors

    def quote(self, req: BookingRequest, email: Optional[str] = None) -> PriceBreakdown:
        """Server-side price for a request, including any discount code."""
        if req.booking_type is BookingType.PROPERTY:
            breakdown = self.pricing_service.calculate_property_price(
                req.property_id,
                req.check_in,
                req.check_out,
                [AddonSelection(a.instance_id, a.attendees) for a in req.addons],
            )
            item_id = req.property_id
        else:
            breakdown = self.pricing_service.calculate_experience_price(
                req.instance_id, req.number_of_attendees
            )
            item_id = req.instance_id

        if not req.discount_code:
            return breakdown

        validation = self.discount_service.validate(
            req.discount_code,
            req.booking_type,
            item_id,
            breakdown.subtotal_after_discount,
            email=email,
        )
        if not validation.is_valid:
            raise BookingValidationError([validation.error_message])
        return self.pricing_service.apply_discount_code(
            breakdown, validation.code, validation.discount_amount
        )

    def _ensure_available(self, req: BookingRequest):
        if self.availability_service is None:
            return
        if req.booking_type is BookingType.PROPERTY:
            available = self.availability_service.check_property_availability(
                req.property_id, req.check_in, req.check_out
            )
        else:
            available = self.availability_service.check_experience_instance_availability(
                req.instance_id, req.number_of_attendees
            )
        if not available:
            raise AvailabilityConflict(
                "The selected dates or slots are no longer available. "
                "Please choose different dates or another session."
            )

    def create_booking(
        self, req: BookingRequest, user_id: str, user_email: Optional[str] = None
    ) -> BookingResult:
        errors = self.validate_request(req, user_id=user_id)
        if errors:
            raise BookingValidationError(errors)
        contact = user_email.strip().lower() if user_email else None
        return self._create(req, user_id=user_id, guest=None, contact_email=contact)

    def create_guest_booking(self, req: GuestBookingRequest) -> BookingResult:
        guest = GuestContact(name=req.guest_name, email=req.guest_email, phone=req.guest_phone)
        errors = self.validate_request(req, guest=guest)
        if errors:
            raise BookingValidationError(errors)
        return self._create(req, user_id=None, guest=guest, contact_email=guest.email)

    def _create(
        self,
        req: BookingRequest,
        user_id: Optional[str],
        guest: Optional[GuestContact],
        contact_email: Optional[str],
    ) -> BookingResult:
        breakdown = self.quote(req, email=contact_email)
        errors = self.validate_breakdown(breakdown)
        if errors:
            raise BookingValidationError(errors)

        if guest is not None and self.rate_limit_service is not None:
            self.rate_limit_service.enforce_guest_booking_limit(guest.email)

        self._ensure_available(req)

        instance = None
        stay = None
        slot = None
        if req.booking_type is BookingType.PROPERTY:
            stay = PropertyStay(
                property_id=req.property_id,
                check_in=req.check_in,
                check_out=req.check_out,
                number_of_guests=req.number_of_guests or 1,
            )
        else:
            instance = self.catalog_repo.get_instance(req.instance_id)
            if instance is None:
                raise NotFoundException("experience instance", req.instance_id, 404)
            slot = ExperienceSlot(
                instance_id=instance.instance_id,
                number_of_attendees=req.number_of_attendees,
                experience_id=instance.experience_id,
            )

        booking_id = str(uuid4())
        booking = None
        for attempt in range(1, MAX_REFERENCE_ATTEMPTS + 1):
            booking = Booking(
                booking_id=booking_id,
                booking_reference=generate_booking_reference(),
                booking_type=req.booking_type,
                price_breakdown=breakdown,
                user_id=user_id,
                guest=guest,
                contact_email=contact_email,
                stay=stay,
                slot=slot,
                special_requests=req.special_requests,
                discount_code=breakdown.discount_code,
            )
            try:
                self.booking_repo.add_booking(booking, instance=instance)
                break
            except DuplicateReference:
                logger.warning(
                    f"Booking reference {booking.booking_reference} taken (attempt {attempt})"
                )
            except ClientError as err:
                logger.error(f"Could not persist booking {booking_id}: {err}")
                raise PersistenceError(PERSISTENCE_MESSAGE) from err
        else:
            raise PersistenceError(PERSISTENCE_MESSAGE)

        logger.info(f"Created booking {booking_id} ({booking.booking_reference})")
        if self.audit_service:
            self.audit_service.log(
                AuditAction.BOOKING_CREATED,
                user_id or contact_email,
                resource_type="booking",
                resource_id=booking_id,
                details={
                    "booking_type": booking.booking_type.value,
                    "total_amount_due": str(breakdown.total_amount_due),
                    "guest": guest is not None,
                },
            )
        self._schedule_expiry(booking)

        return BookingResult(
            booking_id=booking_id,
            booking_reference=booking.booking_reference,
            price_breakdown=breakdown,
        )

    def _schedule_expiry(self, booking: Booking):
        if not self.schedule_service or not self.pending_ttl_minutes:
            return
        expires_at = booking.created_at + timedelta(minutes=self.pending_ttl_minutes)
        try:
            self.schedule_service.schedule_expiry(booking.booking_id, expires_at)
        except ClientError:
            logger.exception(f"Failed to schedule expiry for booking {booking.booking_id}")

    def get_booking(
        self, booking_id: str, user_id: Optional[str] = None, email: Optional[str] = None
    ) -> Booking:
        booking = self.booking_repo.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("booking", booking_id, 404)
        if not can_access(booking, user_id=user_id, email=email):
            if self.audit_service:
                self.audit_service.log(
                    AuditAction.UNAUTHORIZED_ACCESS_ATTEMPT,
                    user_id or email or "anonymous",
                    resource_type="booking",
                    resource_id=booking_id,
                )
            raise BookingAccessDenied("You do not have access to this booking")
        return booking

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        return self.booking_repo.get_user_bookings(user_id)

    def get_guest_bookings(self, email: str) -> List[Booking]:
        return self.booking_repo.get_email_bookings(email.strip().lower())

    def expire_unpaid_booking(self, booking_id: str) -> bool:
        booking = self.booking_repo.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("booking", booking_id, 404)
        if not booking.is_payable:
            logger.info(f"Booking {booking_id} is {booking.status.value}; nothing to expire")
            return False

        released = self.booking_repo.cancel_unpaid_booking(booking)
        if released:
            logger.info(f"Expired unpaid booking {booking_id}")
        return released
