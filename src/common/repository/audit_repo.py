from botocore.exceptions import ClientError
import logging
from datetime import timedelta
from uuid import uuid4

from common.models.audit import AuditEvent
from common.utils.datetime_normaliser import to_iso_string

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
else:
    Table = object


logger = logging.getLogger(__name__)

AUDIT_RETENTION = timedelta(days=90)


class AuditRepository:
    def __init__(self, table: Table):
        self.table = table

    def add_event(self, event: AuditEvent):
        occurred_iso = to_iso_string(event.occurred_at)
        item = {
            "pk": f"AUDIT#{event.occurred_at.date().isoformat()}",
            "sk": f"{occurred_iso}#{uuid4()}",
            "action_type": event.action.value,
            "identifier": event.identifier,
            "severity": event.severity.value,
            "details": event.details,
            "occurred_at": occurred_iso,
            "ttl_attribute": int((event.occurred_at + AUDIT_RETENTION).timestamp()),
        }
        if event.resource_type:
            item["resource_type"] = event.resource_type
        if event.resource_id:
            item["resource_id"] = event.resource_id

        try:
            self.table.put_item(Item=item)
        except ClientError as err:
            logger.error(f"Error storing audit event {event.action.value}: {err}")
            raise
