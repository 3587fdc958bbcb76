from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from common.utils.constants import DEFAULT_CURRENCY, GST_PERCENTAGE


@dataclass(frozen=True)
class AppliedDiscount:
    name: str
    percentage: Decimal
    amount: Decimal


@dataclass(frozen=True)
class CompetitorRate:
    platform: str
    rate_per_night: Decimal
    is_available: bool = True


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: Decimal
    discount_amount: Decimal
    subtotal_after_discount: Decimal
    tax_amount: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    total_amount_due: Decimal
    currency: str = DEFAULT_CURRENCY
    tax_percentage: int = GST_PERCENTAGE
    cleaning_fee: Decimal = Decimal("0")
    addon_experiences_total: Decimal = Decimal("0")
    nights: Optional[int] = None
    applied_discounts: List[AppliedDiscount] = field(default_factory=list)
    discount_code: Optional[str] = None
    code_discount_amount: Decimal = Decimal("0")
    competitor_rates: List[CompetitorRate] = field(default_factory=list)
    savings_from_competitors: Decimal = Decimal("0")
    is_estimate: bool = False


@dataclass(frozen=True)
class PricingRule:
    rule_id: str
    rule_type: str
    priority: int
    discount_percentage: Optional[Decimal] = None
    markup_percentage: Optional[Decimal] = None
    property_id: Optional[str] = None
    experience_id: Optional[str] = None
    platform: Optional[str] = None
    is_active: bool = True

    @property
    def display_name(self) -> str:
        if self.platform:
            return f"{self.platform} Discount"
        return "Base Discount"


@dataclass(frozen=True)
class AddonSelection:
    instance_id: str
    attendees: int
