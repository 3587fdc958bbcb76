from botocore.exceptions import ClientError
import logging
from dataclasses import dataclass
from typing import Optional

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
else:
    Table = object


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitState:
    allowed: bool
    attempt_count: int
    window_start: int
    window_seconds: int

    @property
    def reset_at(self) -> int:
        return self.window_start + self.window_seconds


def _conditional_failed(err: ClientError) -> bool:
    return err.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class RateLimitRepository:
    """Windowed attempt counters kept in the shared table.

    Each identifier/action pair owns one counter item. A window opens at the
    first attempt and lasts window_seconds; both the increment and the reset
    are conditional updates so concurrent invocations cannot overshoot.
    """

    def __init__(self, table: Table):
        self.table = table

    @staticmethod
    def _key(action: str, identifier: str) -> dict:
        return {"pk": f"RATELIMIT#{action}#{identifier}", "sk": "WINDOW"}

    def hit(
        self, action: str, identifier: str, limit: int, window_seconds: int, now: int
    ) -> RateLimitState:
        key = self._key(action, identifier)
        cutoff = now - window_seconds

        try:
            response = self.table.update_item(
                Key=key,
                UpdateExpression="SET #count = #count + :one",
                ConditionExpression="#start > :cutoff AND #count < :limit",
                ExpressionAttributeNames={"#count": "attempt_count", "#start": "window_start"},
                ExpressionAttributeValues={":one": 1, ":cutoff": cutoff, ":limit": limit},
                ReturnValues="ALL_NEW",
            )
            item = response["Attributes"]
            return RateLimitState(
                True, int(item["attempt_count"]), int(item["window_start"]), window_seconds
            )
        except ClientError as err:
            if not _conditional_failed(err):
                logger.error(f"Error updating rate limit for {action}: {err}")
                raise

        try:
            self.table.update_item(
                Key=key,
                UpdateExpression="SET #count = :one, #start = :now, #ttl = :expires",
                ConditionExpression="attribute_not_exists(pk) OR #start <= :cutoff",
                ExpressionAttributeNames={
                    "#count": "attempt_count",
                    "#start": "window_start",
                    "#ttl": "ttl_attribute",
                },
                ExpressionAttributeValues={
                    ":one": 1,
                    ":now": now,
                    ":cutoff": cutoff,
                    ":expires": now + window_seconds,
                },
            )
            return RateLimitState(True, 1, now, window_seconds)
        except ClientError as err:
            if not _conditional_failed(err):
                logger.error(f"Error opening rate limit window for {action}: {err}")
                raise

        current = self.get_state(action, identifier, window_seconds)
        if current is None:
            return RateLimitState(False, limit, now, window_seconds)
        return RateLimitState(False, current.attempt_count, current.window_start, window_seconds)

    def get_state(
        self, action: str, identifier: str, window_seconds: int
    ) -> Optional[RateLimitState]:
        try:
            response = self.table.get_item(Key=self._key(action, identifier))
        except ClientError as err:
            logger.error(f"Error reading rate limit for {action}: {err}")
            raise
        item = response.get("Item")
        if not item:
            return None
        return RateLimitState(
            allowed=True,
            attempt_count=int(item["attempt_count"]),
            window_start=int(item["window_start"]),
            window_seconds=window_seconds,
        )
