from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class DiscountScope(str, Enum):
    ALL = "all"
    PROPERTIES = "properties"
    EXPERIENCES = "experiences"


@dataclass
class DiscountCode:
    code: str
    discount_type: DiscountType
    discount_value: Decimal
    valid_from: datetime
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = None
    used_count: int = 0
    minimum_amount: Decimal = Decimal("0")
    maximum_discount: Optional[Decimal] = None
    applicable_to: DiscountScope = DiscountScope.ALL
    item_ids: List[str] = field(default_factory=list)
    is_active: bool = True
    first_time_only: bool = False

    def __post_init__(self):
        self.code = self.code.upper()

    @property
    def is_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used_count >= self.usage_limit


@dataclass(frozen=True)
class DiscountValidation:
    is_valid: bool
    discount_amount: Decimal = Decimal("0")
    code: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    error_message: Optional[str] = None

    @classmethod
    def rejected(cls, message: str) -> "DiscountValidation":
        return cls(is_valid=False, error_message=message)
