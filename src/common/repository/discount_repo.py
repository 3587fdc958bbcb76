from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Optional

from common.models.discounts import DiscountCode, DiscountScope, DiscountType
from common.utils.datetime_normaliser import from_iso_string

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
else:
    Table = object


logger = logging.getLogger(__name__)


class DiscountRepository:
    def __init__(self, table: Table):
        self.table = table

    def get_code(self, code: str) -> Optional[DiscountCode]:
        code = code.upper()
        try:
            response = self.table.get_item(Key={"pk": f"DISCOUNT#{code}", "sk": "DETAILS"})
        except ClientError as err:
            logger.error(f"Error retrieving discount code {code}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return DiscountCode(
            code=code,
            discount_type=DiscountType(item["discount_type"]),
            discount_value=Decimal(str(item["discount_value"])),
            valid_from=from_iso_string(item["valid_from"]),
            valid_until=(
                from_iso_string(item["valid_until"]) if item.get("valid_until") else None
            ),
            usage_limit=(
                int(item["usage_limit"]) if item.get("usage_limit") is not None else None
            ),
            used_count=int(item.get("used_count", 0)),
            minimum_amount=Decimal(str(item.get("minimum_amount", 0))),
            maximum_discount=(
                Decimal(str(item["maximum_discount"]))
                if item.get("maximum_discount") is not None
                else None
            ),
            applicable_to=DiscountScope(item.get("applicable_to", DiscountScope.ALL.value)),
            item_ids=list(item.get("item_ids", [])),
            is_active=bool(item.get("is_active", True)),
            first_time_only=bool(item.get("first_time_only", False)),
        )

    def increment_usage(self, code: str) -> bool:
        """Bumps used_count unless that would pass usage_limit."""
        code = code.upper()
        try:
            self.table.update_item(
                Key={"pk": f"DISCOUNT#{code}", "sk": "DETAILS"},
                UpdateExpression="SET #used = if_not_exists(#used, :zero) + :one",
                ConditionExpression=(
                    "attribute_exists(pk) AND "
                    "(attribute_not_exists(#limit) OR attribute_type(#limit, :null_type) "
                    "OR attribute_not_exists(#used) OR #used < #limit)"
                ),
                ExpressionAttributeNames={"#used": "used_count", "#limit": "usage_limit"},
                ExpressionAttributeValues={":zero": 0, ":one": 1, ":null_type": "NULL"},
            )
        except ClientError as err:
            if (
                err.response.get("Error", {}).get("Code")
                == "ConditionalCheckFailedException"
            ):
                logger.warning(f"Discount code {code} is exhausted or missing")
                return False
            logger.error(f"Error recording usage of discount code {code}: {err}")
            raise
        return True
