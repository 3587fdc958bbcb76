import re
from datetime import date
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from common.models.bookings import BookingType
from common.utils.constants import SPECIAL_REQUESTS_MAX_LENGTH

NAME_REGEX = re.compile(r"^[a-zA-Z\s]+$")
PHONE_REGEX = re.compile(r"^\+?[\d\s\-\(\)]{7,15}$")


def lower_email(value):
    if isinstance(value, str):
        return value.strip().lower() or None
    return value


class AddonRequest(BaseModel):
    instance_id: str = Field(min_length=1)
    attendees: int = Field(ge=1)


class BookingRequest(BaseModel):
    booking_type: BookingType

    property_id: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    number_of_guests: Optional[int] = None

    instance_id: Optional[str] = None
    number_of_attendees: Optional[int] = None

    addons: List[AddonRequest] = Field(default_factory=list)
    discount_code: Optional[str] = None
    special_requests: Optional[str] = None

    @field_validator("discount_code")
    @classmethod
    def upper_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip().upper()

    @field_validator("special_requests")
    @classmethod
    def clean_special_requests(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if len(value) > SPECIAL_REQUESTS_MAX_LENGTH:
            raise ValueError(
                f"Special requests must be less than {SPECIAL_REQUESTS_MAX_LENGTH} characters"
            )
        cleaned = re.sub(r"[<>]", "", value.strip())
        return cleaned or None


class GuestBookingRequest(BookingRequest):
    guest_name: str
    guest_email: EmailStr
    guest_phone: str

    @field_validator("guest_name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required")
        if len(value) > 100:
            raise ValueError("Name must be less than 100 characters")
        if not NAME_REGEX.match(value):
            raise ValueError("Name can only contain letters and spaces")
        return value

    @field_validator("guest_email", mode="before")
    @classmethod
    def validate_email(cls, value):
        return lower_email(value)

    @field_validator("guest_phone")
    @classmethod
    def validate_phone(cls, value: str) -> str:
        value = value.strip()
        if not PHONE_REGEX.match(value):
            raise ValueError("Invalid phone number format")
        return value


class PriceQuoteRequest(BookingRequest):
    email: Optional[EmailStr] = None

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value):
        return lower_email(value)
