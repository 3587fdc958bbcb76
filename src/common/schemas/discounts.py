from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from common.models.bookings import BookingType
from common.schemas.bookings import lower_email


class DiscountValidationRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    booking_type: BookingType
    item_id: str = Field(min_length=1)
    candidate_total: Decimal = Field(ge=0)
    email: Optional[EmailStr] = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value):
        return lower_email(value)


class FirstTimeVerificationRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value):
        return lower_email(value)
