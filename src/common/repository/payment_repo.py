from botocore.exceptions import ClientError
import logging
from decimal import Decimal
from typing import Optional

from common.models.payments import AttemptStatus, Payment, PaymentAttempt
from common.utils.datetime_normaliser import from_iso_string, to_iso_string, utc_now

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)


class PaymentRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    def add_attempt(self, attempt: PaymentAttempt):
        try:
            self.table.put_item(
                Item={
                    "pk": f"BOOKING#{attempt.booking_id}",
                    "sk": f"ATTEMPT#{attempt.order_id}",
                    "order_id": attempt.order_id,
                    "amount": attempt.amount,
                    "currency": attempt.currency,
                    "attempt_status": attempt.status.value,
                    "created_at": to_iso_string(attempt.created_at),
                }
            )
        except ClientError as err:
            logger.error(f"Error recording payment attempt {attempt.order_id}: {err}")
            raise

    def update_attempt_status(
        self,
        booking_id: str,
        order_id: str,
        status: AttemptStatus,
        failure_code: Optional[str] = None,
        failure_description: Optional[str] = None,
    ) -> bool:
        names = {"#attempt_status": "attempt_status", "#completed_at": "completed_at"}
        values = {":status": status.value, ":completed_at": to_iso_string(utc_now())}
        expression = "SET #attempt_status = :status, #completed_at = :completed_at"
        if failure_code:
            names["#failure_code"] = "failure_code"
            values[":failure_code"] = failure_code
            expression += ", #failure_code = :failure_code"
        if failure_description:
            names["#failure_description"] = "failure_description"
            values[":failure_description"] = failure_description
            expression += ", #failure_description = :failure_description"

        try:
            self.table.update_item(
                Key={"pk": f"BOOKING#{booking_id}", "sk": f"ATTEMPT#{order_id}"},
                UpdateExpression=expression,
                ConditionExpression="attribute_exists(pk)",
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values,
            )
        except ClientError as err:
            if (
                err.response.get("Error", {}).get("Code")
                == "ConditionalCheckFailedException"
            ):
                logger.warning(f"No payment attempt {order_id} for booking {booking_id}")
                return False
            logger.error(f"Error updating payment attempt {order_id}: {err}")
            raise
        return True

    def get_attempt(self, booking_id: str, order_id: str) -> Optional[PaymentAttempt]:
        try:
            response = self.table.get_item(
                Key={"pk": f"BOOKING#{booking_id}", "sk": f"ATTEMPT#{order_id}"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving payment attempt {order_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return PaymentAttempt(
            booking_id=booking_id,
            order_id=order_id,
            amount=Decimal(str(item["amount"])),
            currency=item["currency"],
            status=AttemptStatus(item["attempt_status"]),
            failure_code=item.get("failure_code"),
            failure_description=item.get("failure_description"),
            created_at=from_iso_string(item["created_at"]),
            completed_at=(
                from_iso_string(item["completed_at"]) if item.get("completed_at") else None
            ),
        )

    def add_failed_payment(self, payment: Payment) -> bool:
        """Stores a failed payment once; replays of the same failure are ignored."""
        try:
            self.table.put_item(
                Item={
                    "pk": f"PAYMENT#{payment.transaction_id}",
                    "sk": "DETAILS",
                    "booking_id": payment.booking_id,
                    "order_id": payment.order_id,
                    "amount": payment.amount,
                    "currency": payment.currency,
                    "method": payment.method,
                    "payment_status": payment.status.value,
                    "gateway": payment.gateway,
                    "failure_reason": payment.failure_reason,
                    "processed_at": to_iso_string(payment.processed_at),
                },
                ConditionExpression="attribute_not_exists(pk)",
            )
        except ClientError as err:
            if (
                err.response.get("Error", {}).get("Code")
                == "ConditionalCheckFailedException"
            ):
                logger.info(f"Failure for order {payment.order_id} already recorded")
                return False
            logger.error(f"Error recording failed payment {payment.transaction_id}: {err}")
            raise
        return True
