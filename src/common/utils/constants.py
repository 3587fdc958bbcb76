from decimal import Decimal

MAX_STAY = 30
MAX_ADVANCE_YEARS = 2
MAX_GUESTS = 20
MAX_ATTENDEES = 50

MAX_BOOKING_AMOUNT = Decimal("500000")
SUPPORTED_CURRENCIES = ("INR", "USD")
DEFAULT_CURRENCY = "INR"

GST_RATE = Decimal("0.18")
GST_PERCENTAGE = 18

FALLBACK_NIGHTLY_RATE = Decimal("4000")

GUEST_BOOKING_LIMIT = 3
SIGNATURE_FAILURE_LIMIT = 5
RATE_LIMIT_WINDOW_SECONDS = 3600

FIRST_TIME_CODE = "FIRSTTIME250"
PAYMENT_CANCELLED_CODE = "PAYMENT_CANCELLED"
SPECIAL_REQUESTS_MAX_LENGTH = 500
