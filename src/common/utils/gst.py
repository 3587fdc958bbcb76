from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from common.utils.constants import GST_RATE

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Converts a rupee/dollar amount to paise/cents for the gateway."""
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class GstBreakdown:
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total: Decimal


def calculate_gst(amount: Decimal, is_interstate: bool = False) -> GstBreakdown:
    total = to_money(to_money(amount) * GST_RATE)
    if is_interstate:
        return GstBreakdown(cgst=ZERO, sgst=ZERO, igst=total, total=total)

    # the halves must add back up to the rounded total
    cgst = to_money(total / 2)
    sgst = total - cgst
    return GstBreakdown(cgst=cgst, sgst=sgst, igst=ZERO, total=total)
