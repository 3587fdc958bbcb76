import boto3
from datetime import timezone, datetime
import json
import logging

logger = logging.getLogger(__name__)


class SchedulerService:
    """One-off EventBridge schedules that invoke the expiry Lambda."""

    def __init__(self, lambda_arn: str, role_arn: str, region="ap-south-1", client=None):
        self.client = client if client else boto3.client("scheduler", region_name=region)
        self.lambda_arn = lambda_arn
        self.role_arn = role_arn

    def schedule_expiry(self, booking_id: str, expires_at: datetime):
        schedule_name = f"expire-booking-{booking_id}"

        try:
            schedule_expression = self._to_at_expression(expires_at)
        except ValueError as e:
            logger.error(f"Invalid expiry time for {booking_id}: {e}")
            raise

        schedule_params = {
            "Name": schedule_name,
            "ScheduleExpression": schedule_expression,
            "ScheduleExpressionTimezone": "UTC",
            "FlexibleTimeWindow": {"Mode": "OFF"},
            "Target": {
                "Arn": self.lambda_arn,
                "RoleArn": self.role_arn,
                "Input": json.dumps({"booking_id": booking_id}),
            },
            "ActionAfterCompletion": "DELETE",
        }

        try:
            self.client.create_schedule(**schedule_params, ClientToken=booking_id)
            logger.info(f"Scheduled expiry for {booking_id} at {schedule_expression}")
            return True
        except self.client.exceptions.ConflictException:
            logger.info(f"Schedule {schedule_name} exists. Updating expiry time.")
            self.client.update_schedule(**schedule_params)
            return True

    def _to_at_expression(self, dt: datetime) -> str:
        if isinstance(dt, str):
            dt = datetime.fromisoformat(dt)

        if dt.tzinfo is None:
            raise ValueError("expiry time must be timezone-aware")

        utc_dt = dt.astimezone(timezone.utc)
        return f"at({utc_dt.strftime('%Y-%m-%dT%H:%M:%S')})"
