from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from common.schemas.bookings import lower_email
from common.utils.constants import SUPPORTED_CURRENCIES


class CreateOrderRequest(BaseModel):
    booking_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0, le=1000000)
    currency: str
    receipt: str = Field(min_length=1, max_length=40)
    guest_email: Optional[EmailStr] = None

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, value: str) -> str:
        value = value.upper()
        if value not in SUPPORTED_CURRENCIES:
            raise ValueError("Invalid currency. Only INR and USD are supported.")
        return value

    @field_validator("guest_email", mode="before")
    @classmethod
    def validate_email(cls, value):
        return lower_email(value)


class VerifyPaymentRequest(BaseModel):
    booking_id: str = Field(min_length=1)
    razorpay_payment_id: str = Field(min_length=1)
    razorpay_order_id: str = Field(min_length=1)
    razorpay_signature: str = Field(min_length=1)


class PaymentFailureRequest(BaseModel):
    booking_id: str = Field(min_length=1)
    razorpay_order_id: str = Field(min_length=1)
    error_code: str = Field(min_length=1)
    error_description: Optional[str] = None
