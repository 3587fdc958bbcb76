from botocore.exceptions import ClientError
import logging
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from common.models.catalog import Experience, ExperienceInstance
from common.models.pricing import (
    AddonSelection,
    AppliedDiscount,
    CompetitorRate,
    PriceBreakdown,
    PricingRule,
)
from common.repository.catalog_repo import CatalogRepository
from common.repository.pricing_repo import PricingRepository
from common.utils.constants import DEFAULT_CURRENCY, FALLBACK_NIGHTLY_RATE
from common.utils.custom_exceptions import (
    InvalidDates,
    NotFoundException,
    PriceCalculationError,
)
from common.utils.gst import ZERO, calculate_gst, to_money

logger = logging.getLogger(__name__)

DISCOUNT_RULE = "discount"
REFERENCE_PLATFORM = "airbnb"


def experience_base_price(
    instance: ExperienceInstance, experience: Optional[Experience], attendees: int
) -> Decimal:
    """Flat fee when one applies, otherwise per-person price times attendees."""
    experience_flat = experience.flat_fee_price if experience else None
    experience_per_person = experience.price_per_person if experience else None

    use_flat_fee = instance.flat_fee_price_override is not None or (
        experience_flat is not None and instance.price_per_person_override is None
    )
    if use_flat_fee:
        flat = instance.flat_fee_price_override
        if flat is None:
            flat = experience_flat
        return to_money(flat)

    per_person = instance.price_per_person_override
    if per_person is None:
        per_person = experience_per_person
    if per_person is None:
        raise PriceCalculationError(
            f"No price configured for experience instance {instance.instance_id}"
        )
    return to_money(per_person * attendees)


def addon_price(
    instance: ExperienceInstance, experience: Optional[Experience], attendees: int
) -> Decimal:
    if instance.flat_fee_price_override is not None:
        return to_money(instance.flat_fee_price_override)
    if experience is not None and experience.flat_fee_price is not None:
        return to_money(experience.flat_fee_price)

    per_person = instance.price_per_person_override
    if per_person is None and experience is not None:
        per_person = experience.price_per_person
    if per_person is None:
        raise PriceCalculationError(
            f"No price configured for add-on instance {instance.instance_id}"
        )
    return to_money(per_person * attendees)


def apply_pricing_rules(
    price: Decimal, rules: Sequence[PricingRule]
) -> Tuple[Decimal, List[AppliedDiscount]]:
    """Applies discount rules one after another on the running price."""
    running = to_money(price)
    applied = []
    for rule in rules:
        if rule.rule_type != DISCOUNT_RULE or not rule.discount_percentage:
            continue
        amount = to_money(running * rule.discount_percentage / 100)
        if amount <= 0:
            continue
        running = max(ZERO, running - amount)
        applied.append(
            AppliedDiscount(
                name=rule.display_name,
                percentage=rule.discount_percentage,
                amount=amount,
            )
        )
    return running, applied


class PricingService:
    def __init__(
        self,
        catalog_repo: CatalogRepository,
        pricing_repo: PricingRepository,
        is_interstate: bool = False,
    ):
        self.catalog_repo = catalog_repo
        self.pricing_repo = pricing_repo
        self.is_interstate = is_interstate

    def _rules(self, property_id=None, experience_id=None) -> List[PricingRule]:
        try:
            return self.pricing_repo.get_pricing_rules(
                property_id=property_id, experience_id=experience_id
            )
        except ClientError as err:
            raise PriceCalculationError("Could not load pricing rules") from err

    def _competitor_rates(
        self, property_id: str, check_in: date, check_out: date
    ) -> List[CompetitorRate]:
        # advisory only, never allowed to block or change a price
        try:
            return self.pricing_repo.get_external_rates(property_id, check_in, check_out)
        except ClientError as err:
            logger.warning(f"Skipping competitor rates for {property_id}: {err}")
            return []

    def _addons_total(self, addons: Optional[Sequence[AddonSelection]]) -> Decimal:
        total = ZERO
        for addon in addons or []:
            try:
                instance, experience = self.catalog_repo.get_instance_with_experience(
                    addon.instance_id
                )
            except ClientError as err:
                raise PriceCalculationError(
                    "Error calculating price: could not fetch add-on experiences"
                ) from err
            if instance is None:
                raise NotFoundException("experience instance", addon.instance_id, 404)
            total += addon_price(instance, experience, addon.attendees)
        return to_money(total)

    def _finalise(
        self,
        base_price: Decimal,
        discounted_price: Decimal,
        applied: List[AppliedDiscount],
        currency: str,
        cleaning_fee: Decimal = ZERO,
        addons_total: Decimal = ZERO,
        **extra,
    ) -> PriceBreakdown:
        subtotal = to_money(max(ZERO, discounted_price + cleaning_fee + addons_total))
        gst = calculate_gst(subtotal, is_interstate=self.is_interstate)
        return PriceBreakdown(
            base_price=to_money(base_price),
            discount_amount=to_money(sum((d.amount for d in applied), ZERO)),
            subtotal_after_discount=subtotal,
            tax_amount=gst.total,
            cgst=gst.cgst,
            sgst=gst.sgst,
            igst=gst.igst,
            total_amount_due=subtotal + gst.total,
            currency=currency,
            cleaning_fee=to_money(cleaning_fee),
            addon_experiences_total=addons_total,
            applied_discounts=applied,
            **extra,
        )

    def calculate_property_price(
        self,
        property_id: str,
        check_in: date,
        check_out: date,
        addons: Optional[Sequence[AddonSelection]] = None,
    ) -> PriceBreakdown:
        try:
            prop = self.catalog_repo.get_property(property_id)
        except ClientError as err:
            raise PriceCalculationError("Could not load property rates") from err
        if prop is None:
            raise NotFoundException("property", property_id, 404)

        nights = (check_out - check_in).days
        if nights <= 0:
            raise InvalidDates("Invalid date range: check-out must be after check-in")

        base_price = to_money(prop.base_price_per_night * nights)
        discounted, applied = apply_pricing_rules(
            base_price, self._rules(property_id=property_id)
        )
        addons_total = self._addons_total(addons)

        competitor_rates = self._competitor_rates(property_id, check_in, check_out)
        savings = ZERO
        for rate in competitor_rates:
            if rate.platform.lower() == REFERENCE_PLATFORM:
                savings = to_money(max(ZERO, rate.rate_per_night * nights - discounted))

        return self._finalise(
            base_price,
            discounted,
            applied,
            prop.currency,
            cleaning_fee=prop.cleaning_fee,
            addons_total=addons_total,
            nights=nights,
            competitor_rates=competitor_rates,
            savings_from_competitors=savings,
        )

    def calculate_experience_price(
        self, instance_id: str, attendee_count: int
    ) -> PriceBreakdown:
        try:
            instance, experience = self.catalog_repo.get_instance_with_experience(
                instance_id
            )
        except ClientError as err:
            raise PriceCalculationError("Could not load experience pricing") from err
        if instance is None:
            raise NotFoundException("experience instance", instance_id, 404)

        base_price = experience_base_price(instance, experience, attendee_count)
        discounted, applied = apply_pricing_rules(
            base_price, self._rules(experience_id=instance.experience_id)
        )
        currency = experience.currency if experience else DEFAULT_CURRENCY
        return self._finalise(base_price, discounted, applied, currency)

    def apply_discount_code(
        self, breakdown: PriceBreakdown, code: str, amount: Decimal
    ) -> PriceBreakdown:
        """Folds a validated code discount into the breakdown and re-taxes it."""
        amount = to_money(min(max(ZERO, amount), breakdown.subtotal_after_discount))
        subtotal = to_money(breakdown.subtotal_after_discount - amount)
        gst = calculate_gst(subtotal, is_interstate=self.is_interstate)
        return replace(
            breakdown,
            discount_amount=breakdown.discount_amount + amount,
            discount_code=code,
            code_discount_amount=amount,
            subtotal_after_discount=subtotal,
            tax_amount=gst.total,
            cgst=gst.cgst,
            sgst=gst.sgst,
            igst=gst.igst,
            total_amount_due=subtotal + gst.total,
        )

    def estimate_fallback_price(self, nights: int) -> PriceBreakdown:
        """Standard flat-rate estimate for display when live pricing fails.

        The result is flagged as an estimate and is refused by the booking
        writer, so it can never become a charge.
        """
        if nights <= 0:
            raise InvalidDates("Invalid date range: check-out must be after check-in")
        base_price = to_money(FALLBACK_NIGHTLY_RATE * nights)
        return self._finalise(
            base_price, base_price, [], DEFAULT_CURRENCY, nights=nights, is_estimate=True
        )
