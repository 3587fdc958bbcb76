import boto3
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from common.models.bookings import Booking, BookingType

logger = logging.getLogger(__name__)

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$"}


class ConfirmationService:
    def __init__(self, sender: str, region="ap-south-1", client=None):
        self.sender = sender
        self.ses = client if client else boto3.client("ses", region_name=region)

    def render(self, booking: Booking) -> str:
        breakdown = booking.price_breakdown
        symbol = CURRENCY_SYMBOLS.get(breakdown.currency, f"{breakdown.currency} ")

        if booking.booking_type is BookingType.PROPERTY:
            details = (
                f"Check-in: {booking.stay.check_in.isoformat()}\n"
                f"Check-out: {booking.stay.check_out.isoformat()}\n"
                f"Nights: {booking.stay.nights}\n"
                f"Guests: {booking.stay.number_of_guests}\n"
            )
        else:
            details = f"Attendees: {booking.slot.number_of_attendees}\n"

        tax_lines = (
            f"IGST: {symbol}{breakdown.igst}\n"
            if breakdown.igst
            else f"CGST: {symbol}{breakdown.cgst}\nSGST: {symbol}{breakdown.sgst}\n"
        )

        return (
            "Hello,\n\n"
            "Your booking is confirmed.\n\n"
            f"Booking reference: {booking.booking_reference}\n"
            f"{details}\n"
            f"Base price: {symbol}{breakdown.base_price}\n"
            f"Discounts: {symbol}{breakdown.discount_amount}\n"
            f"Subtotal: {symbol}{breakdown.subtotal_after_discount}\n"
            f"{tax_lines}"
            f"Total paid: {symbol}{breakdown.total_amount_due}\n"
            f"Payment ID: {booking.payment_id}\n\n"
            "We look forward to hosting you.\n"
        )

    def send_confirmation(self, booking: Booking) -> bool:
        recipient = booking.contact_email
        if not recipient:
            logger.info(f"No contact email on booking {booking.booking_id}; skipping confirmation")
            return False

        msg = MIMEMultipart()
        msg["From"] = self.sender
        msg["To"] = recipient
        msg["Subject"] = f"Booking confirmed: {booking.booking_reference}"
        msg.attach(MIMEText(self.render(booking), "plain", "utf-8"))

        self.ses.send_raw_email(
            Source=self.sender,
            Destinations=[recipient],
            RawMessage={"Data": msg.as_string()},
        )
        logger.info(f"Sent confirmation for booking {booking.booking_id}")
        return True
