from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from common.models.pricing import PriceBreakdown


class BookingType(str, Enum):
    PROPERTY = "property"
    EXPERIENCE = "experience"


class BookingStatus(str, Enum):
    PENDING_PAYMENT = "Pending Payment"
    CONFIRMED = "Confirmed"
    CHECKED_IN = "Checked-In"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"


class PaymentStatus(str, Enum):
    UNPAID = "Unpaid"
    PAID = "Paid"
    PARTIALLY_PAID = "Partially Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"


ACTIVE_STATUSES = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.CHECKED_IN,
        BookingStatus.PENDING_PAYMENT,
    }
)


@dataclass(frozen=True)
class GuestContact:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class PropertyStay:
    property_id: str
    check_in: date
    check_out: date
    number_of_guests: int = 1

    @property
    def nights(self) -> int:
        return (self.check_out - self.check_in).days


@dataclass(frozen=True)
class ExperienceSlot:
    instance_id: str
    number_of_attendees: int
    experience_id: Optional[str] = None


@dataclass
class Booking:
    booking_id: str
    booking_reference: str
    booking_type: BookingType
    price_breakdown: PriceBreakdown
    user_id: Optional[str] = None
    guest: Optional[GuestContact] = None
    contact_email: Optional[str] = None
    stay: Optional[PropertyStay] = None
    slot: Optional[ExperienceSlot] = None
    status: BookingStatus = BookingStatus.PENDING_PAYMENT
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    payment_id: Optional[str] = None
    amount_paid: Optional[Decimal] = None
    confirmed_at: Optional[datetime] = None
    special_requests: Optional[str] = None
    discount_code: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if (self.user_id is None) == (self.guest is None):
            raise ValueError("booking needs exactly one of user_id or guest contact")

        if self.booking_type is BookingType.PROPERTY:
            if self.stay is None or self.slot is not None:
                raise ValueError("property bookings need a stay and no experience slot")
        elif self.booking_type is BookingType.EXPERIENCE:
            if self.slot is None or self.stay is not None:
                raise ValueError("experience bookings need a slot and no stay")
        else:
            raise ValueError(f"unknown booking type {self.booking_type!r}")

        if self.status is BookingStatus.CONFIRMED and (
            self.payment_status is not PaymentStatus.PAID or not self.payment_id
        ):
            raise ValueError("confirmed bookings must carry a verified payment")

        if self.contact_email is None and self.guest is not None:
            self.contact_email = self.guest.email

    @property
    def is_guest(self) -> bool:
        return self.guest is not None

    @property
    def total_amount_due(self) -> Decimal:
        return self.price_breakdown.total_amount_due

    @property
    def currency(self) -> str:
        return self.price_breakdown.currency

    @property
    def is_payable(self) -> bool:
        return (
            self.status is BookingStatus.PENDING_PAYMENT
            and self.payment_status is not PaymentStatus.PAID
        )


@dataclass(frozen=True)
class BookingResult:
    booking_id: str
    booking_reference: str
    price_breakdown: PriceBreakdown
