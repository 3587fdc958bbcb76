from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Optional, Tuple

from common.models.catalog import Property, Experience, ExperienceInstance
from common.utils.constants import DEFAULT_CURRENCY
from common.utils.datetime_normaliser import from_iso_string

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)


def _optional_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


class CatalogRepository:
    """Read access to properties, experiences and experience instances."""

    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    def _get_details(self, pk: str) -> Optional[dict]:
        try:
            response = self.table.get_item(Key={"pk": pk, "sk": "DETAILS"})
        except ClientError as err:
            logger.error(f"Error retrieving {pk}: {err}")
            raise
        return response.get("Item")

    def get_property(self, property_id: str) -> Optional[Property]:
        item = self._get_details(f"PROPERTY#{property_id}")
        if not item:
            return None
        return Property(
            property_id=property_id,
            name=item.get("name", ""),
            base_price_per_night=Decimal(str(item["base_price_per_night"])),
            cleaning_fee=Decimal(str(item.get("cleaning_fee", 0))),
            currency=item.get("currency", DEFAULT_CURRENCY),
            max_guests=int(item["max_guests"]) if item.get("max_guests") else None,
        )

    def get_experience(self, experience_id: str) -> Optional[Experience]:
        item = self._get_details(f"EXPERIENCE#{experience_id}")
        if not item:
            return None
        return Experience(
            experience_id=experience_id,
            title=item.get("title", ""),
            price_per_person=_optional_decimal(item.get("price_per_person")),
            flat_fee_price=_optional_decimal(item.get("flat_fee_price")),
            currency=item.get("currency", DEFAULT_CURRENCY),
        )

    def get_instance(self, instance_id: str) -> Optional[ExperienceInstance]:
        item = self._get_details(f"INSTANCE#{instance_id}")
        if not item:
            return None
        return ExperienceInstance(
            instance_id=instance_id,
            experience_id=item["experience_id"],
            max_capacity=int(item["max_capacity"]),
            current_attendees=int(item.get("current_attendees", 0)),
            price_per_person_override=_optional_decimal(
                item.get("price_per_person_override")
            ),
            flat_fee_price_override=_optional_decimal(
                item.get("flat_fee_price_override")
            ),
            starts_at=from_iso_string(item["starts_at"]) if item.get("starts_at") else None,
        )

    def get_instance_with_experience(
        self, instance_id: str
    ) -> Tuple[Optional[ExperienceInstance], Optional[Experience]]:
        instance = self.get_instance(instance_id)
        if instance is None:
            return None, None
        return instance, self.get_experience(instance.experience_id)
