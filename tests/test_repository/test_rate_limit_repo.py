import unittest
from unittest.mock import MagicMock
from botocore.exceptions import ClientError

from common.repository.rate_limit_repo import RateLimitRepository

NOW = 1_800_000_000
WINDOW = 3600


def conditional_failure():
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "no"}},
        "UpdateItem",
    )


class TestRateLimitRepository(unittest.TestCase):

    def setUp(self):
        self.table = MagicMock()
        self.repo = RateLimitRepository(self.table)

    def test_increments_inside_open_window(self):
        self.table.update_item.return_value = {
            "Attributes": {"attempt_count": 2, "window_start": NOW - 60}
        }

        state = self.repo.hit("guest_booking", "a@example.com", 3, WINDOW, NOW)

        self.assertTrue(state.allowed)
        self.assertEqual(2, state.attempt_count)
        self.assertEqual(NOW - 60 + WINDOW, state.reset_at)
        _, kwargs = self.table.update_item.call_args
        self.assertEqual(
            {"pk": "RATELIMIT#guest_booking#a@example.com", "sk": "WINDOW"}, kwargs["Key"]
        )
        self.assertEqual(3, kwargs["ExpressionAttributeValues"][":limit"])

    def test_opens_new_window_when_missing_or_stale(self):
        self.table.update_item.side_effect = [conditional_failure(), {}]

        state = self.repo.hit("guest_booking", "a@example.com", 3, WINDOW, NOW)

        self.assertTrue(state.allowed)
        self.assertEqual(1, state.attempt_count)
        self.assertEqual(NOW, state.window_start)
        _, kwargs = self.table.update_item.call_args
        self.assertIn("attribute_not_exists(pk)", kwargs["ConditionExpression"])

    def test_blocks_when_window_is_full(self):
        self.table.update_item.side_effect = [conditional_failure(), conditional_failure()]
        self.table.get_item.return_value = {
            "Item": {"attempt_count": 3, "window_start": NOW - 600}
        }

        state = self.repo.hit("guest_booking", "a@example.com", 3, WINDOW, NOW)

        self.assertFalse(state.allowed)
        self.assertEqual(3, state.attempt_count)
        self.assertEqual(NOW - 600 + WINDOW, state.reset_at)

    def test_store_errors_propagate(self):
        self.table.update_item.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "UpdateItem"
        )
        with self.assertRaises(ClientError):
            self.repo.hit("guest_booking", "a@example.com", 3, WINDOW, NOW)


if __name__ == "__main__":
    unittest.main()
