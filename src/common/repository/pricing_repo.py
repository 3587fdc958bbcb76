from botocore.exceptions import ClientError
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import List, Optional
from boto3.dynamodb.conditions import Key

from common.models.pricing import CompetitorRate, PricingRule
from common.utils.gst import to_money

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
else:
    Table = object


logger = logging.getLogger(__name__)


class PricingRepository:
    def __init__(self, table: Table):
        self.table = table

    def get_pricing_rules(
        self,
        property_id: Optional[str] = None,
        experience_id: Optional[str] = None,
    ) -> List[PricingRule]:
        """Active rules for the item (or global ones), highest priority first."""
        kwargs = {
            "KeyConditionExpression": Key("pk").eq("PRICING_RULES")
            & Key("sk").begins_with("RULE#")
        }
        items = []
        try:
            while True:
                response = self.table.query(**kwargs)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as err:
            logger.error(f"Error retrieving pricing rules: {err}")
            raise

        rules = []
        for item in items:
            if not item.get("is_active", True):
                continue
            rule_property = item.get("property_id")
            rule_experience = item.get("experience_id")
            if rule_property and rule_property != property_id:
                continue
            if rule_experience and rule_experience != experience_id:
                continue
            rules.append(
                PricingRule(
                    rule_id=item["sk"].removeprefix("RULE#"),
                    rule_type=item["rule_type"],
                    priority=int(item.get("priority", 0)),
                    discount_percentage=(
                        Decimal(str(item["discount_percentage"]))
                        if item.get("discount_percentage") is not None
                        else None
                    ),
                    markup_percentage=(
                        Decimal(str(item["markup_percentage"]))
                        if item.get("markup_percentage") is not None
                        else None
                    ),
                    property_id=rule_property,
                    experience_id=rule_experience,
                    platform=item.get("platform"),
                )
            )

        rules.sort(key=lambda rule: (-rule.priority, rule.rule_id))
        return rules

    def get_external_rates(
        self, property_id: str, check_in: date, check_out: date
    ) -> List[CompetitorRate]:
        """Competitor nightly rates averaged per platform over the stay."""
        try:
            response = self.table.query(
                KeyConditionExpression=Key("pk").eq(f"PROPERTY#{property_id}")
                & Key("sk").between(
                    f"RATE#{check_in.isoformat()}", f"RATE#{check_out.isoformat()}~"
                )
            )
        except ClientError as err:
            logger.error(f"Error retrieving external rates for {property_id}: {err}")
            raise

        totals = defaultdict(lambda: {"total": Decimal("0"), "count": 0, "available": True})
        for item in response.get("Items", []):
            platform = item["platform"]
            totals[platform]["total"] += Decimal(str(item["rate_per_night"]))
            totals[platform]["count"] += 1
            totals[platform]["available"] = bool(item.get("is_available", True))

        return [
            CompetitorRate(
                platform=platform,
                rate_per_night=to_money(data["total"] / data["count"]),
                is_available=data["available"],
            )
            for platform, data in sorted(totals.items())
        ]
