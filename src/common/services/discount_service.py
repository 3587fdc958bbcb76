import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from common.models.bookings import BookingType
from common.models.discounts import (
    DiscountCode,
    DiscountScope,
    DiscountType,
    DiscountValidation,
)
from common.repository.booking_repo import BookingRepository
from common.repository.discount_repo import DiscountRepository
from common.utils.datetime_normaliser import utc_now
from common.utils.gst import ZERO, to_money

logger = logging.getLogger(__name__)

SCOPE_FOR_TYPE = {
    BookingType.PROPERTY: DiscountScope.PROPERTIES,
    BookingType.EXPERIENCE: DiscountScope.EXPERIENCES,
}


class DiscountService:
    def __init__(self, discount_repo: DiscountRepository, booking_repo: BookingRepository):
        self.discount_repo = discount_repo
        self.booking_repo = booking_repo

    def validate(
        self,
        code: str,
        booking_type: BookingType,
        item_id: str,
        candidate_total: Decimal,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DiscountValidation:
        """Checks a code against its rules in order and prices the discount.

        The first failing rule decides the error message; nothing is written.
        """
        now = now or utc_now()
        candidate_total = to_money(candidate_total)

        discount = self.discount_repo.get_code(code)
        if discount is None or not discount.is_active:
            return DiscountValidation.rejected("Invalid discount code")

        if now < discount.valid_from:
            return DiscountValidation.rejected("This discount code is not yet active")
        if discount.valid_until is not None and now > discount.valid_until:
            return DiscountValidation.rejected("This discount code has expired")

        if discount.is_exhausted:
            return DiscountValidation.rejected("This discount code has reached its usage limit")

        if candidate_total < discount.minimum_amount:
            return DiscountValidation.rejected(
                f"Minimum booking amount of {to_money(discount.minimum_amount)} required"
            )

        if not self._applies_to(discount, booking_type, item_id):
            return DiscountValidation.rejected("This discount code is not valid for this booking")

        if discount.first_time_only:
            if not email or not self.verify_first_time_eligibility(email):
                return DiscountValidation.rejected(
                    "This discount code is only for first-time guests; you are not eligible"
                )

        return DiscountValidation(
            is_valid=True,
            discount_amount=self._amount(discount, candidate_total),
            code=discount.code,
            discount_type=discount.discount_type,
        )

    def _applies_to(self, discount: DiscountCode, booking_type: BookingType, item_id: str) -> bool:
        if discount.applicable_to is DiscountScope.ALL:
            return True
        if discount.applicable_to is not SCOPE_FOR_TYPE[booking_type]:
            return False
        if discount.item_ids:
            return item_id in discount.item_ids
        return True

    def _amount(self, discount: DiscountCode, candidate_total: Decimal) -> Decimal:
        if discount.discount_type is DiscountType.PERCENTAGE:
            amount = candidate_total * discount.discount_value / 100
            if discount.maximum_discount is not None:
                amount = min(amount, discount.maximum_discount)
        else:
            amount = discount.discount_value
        return to_money(max(ZERO, min(amount, candidate_total)))

    def verify_first_time_eligibility(self, email: str) -> bool:
        return not self.booking_repo.has_bookings_for_email(email.strip().lower())

    def record_usage(self, code: str) -> bool:
        recorded = self.discount_repo.increment_usage(code)
        if not recorded:
            logger.warning(f"Usage of discount code {code} was not recorded")
        return recorded
