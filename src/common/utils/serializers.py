from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from common.models.bookings import Booking
from common.models.pricing import PriceBreakdown


def to_jsonable(value):
    """Turns models into plain JSON types; money stays an exact string."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def breakdown_to_dict(breakdown: PriceBreakdown) -> dict:
    return to_jsonable(breakdown)


def booking_to_dict(booking: Booking) -> dict:
    data = {
        "booking_id": booking.booking_id,
        "booking_reference": booking.booking_reference,
        "booking_type": booking.booking_type.value,
        "booking_status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "total_amount_due": str(booking.total_amount_due),
        "currency": booking.currency,
        "price_breakdown": breakdown_to_dict(booking.price_breakdown),
        "created_at": booking.created_at.isoformat(),
    }
    if booking.stay:
        data.update(
            property_id=booking.stay.property_id,
            check_in=booking.stay.check_in.isoformat(),
            check_out=booking.stay.check_out.isoformat(),
            number_of_guests=booking.stay.number_of_guests,
        )
    if booking.slot:
        data.update(
            instance_id=booking.slot.instance_id,
            number_of_attendees=booking.slot.number_of_attendees,
        )
    if booking.payment_id:
        data["payment_id"] = booking.payment_id
    if booking.confirmed_at:
        data["confirmed_at"] = booking.confirmed_at.isoformat()
    if booking.discount_code:
        data["discount_code"] = booking.discount_code
    if booking.special_requests:
        data["special_requests"] = booking.special_requests
    return data
