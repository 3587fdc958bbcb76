import secrets
import string
from datetime import datetime, timezone
from typing import Optional

_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_booking_reference(now: Optional[datetime] = None) -> str:
    """Builds a BK-YYMMDD-XXXXAAAA reference.

    XXXX is the tail of the millisecond timestamp in base36 and AAAA is a
    random uppercase alphanumeric suffix. Uniqueness is still enforced by the
    store when the booking is written.
    """
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    stamp = _to_base36(millis)[-4:].rjust(4, "0")
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(4))
    return f"BK-{now.strftime('%y%m%d')}-{stamp}{suffix}"
