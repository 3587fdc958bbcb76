from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from common.utils.constants import DEFAULT_CURRENCY


@dataclass
class Property:
    property_id: str
    name: str
    base_price_per_night: Decimal
    cleaning_fee: Decimal = Decimal("0")
    currency: str = DEFAULT_CURRENCY
    max_guests: Optional[int] = None


@dataclass
class Experience:
    experience_id: str
    title: str
    price_per_person: Optional[Decimal] = None
    flat_fee_price: Optional[Decimal] = None
    currency: str = DEFAULT_CURRENCY


@dataclass
class ExperienceInstance:
    instance_id: str
    experience_id: str
    max_capacity: int
    current_attendees: int = 0
    price_per_person_override: Optional[Decimal] = None
    flat_fee_price_override: Optional[Decimal] = None
    starts_at: Optional[datetime] = None

    @property
    def remaining_capacity(self) -> int:
        return self.max_capacity - self.current_attendees
