import importlib
import json
import os
import unittest
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

from common.models.bookings import BookingResult
from common.models.pricing import PriceBreakdown
from common.utils.custom_exceptions import AvailabilityConflict, RateLimited


class CreateGuestBookingTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.env = patch.dict(os.environ, {"TABLE_NAME": "test-table"}, clear=False)
        cls.env.start()
        cls.resource = patch("boto3.resource")
        mock_res = cls.resource.start()
        mock_res.return_value.Table.return_value = MagicMock()
        import handlers.bookings.create_guest_booking as mod
        cls.mod = importlib.reload(mod)

    @classmethod
    def tearDownClass(cls):
        cls.resource.stop()
        cls.env.stop()

    def setUp(self):
        self.p_create = patch.object(self.mod.booking_service, "create_guest_booking")
        self.mock_create = self.p_create.start()

    def tearDown(self):
        self.p_create.stop()

    def _body(self, **overrides):
        check_in = date.today() + timedelta(days=30)
        body = {
            "booking_type": "property",
            "property_id": "p1",
            "check_in": check_in.isoformat(),
            "check_out": (check_in + timedelta(days=3)).isoformat(),
            "number_of_guests": 2,
            "guest_name": "Asha Rao",
            "guest_email": "Asha@Example.com",
            "guest_phone": "+91 98765 43210",
        }
        body.update(overrides)
        return json.dumps(body)

    def test_invalid_guest_details_return_400(self):
        resp = self.mod.create_guest_booking({"body": self._body(guest_email="not-an-email")}, None)

        self.assertEqual(400, resp["statusCode"])
        self.assertIn("guest_email", json.loads(resp["body"])["message"])
        self.mock_create.assert_not_called()

    def test_malformed_addresses_are_rejected(self):
        for email in ("a@b..com", "a..b@example.com", ".a@example.com", ""):
            with self.subTest(email=email):
                resp = self.mod.create_guest_booking({"body": self._body(guest_email=email)}, None)
                self.assertEqual(400, resp["statusCode"])
        self.mock_create.assert_not_called()

    def test_success_returns_201(self):
        self.mock_create.return_value = BookingResult(
            "b1",
            "BK-261019-0K3FQ7ZA",
            PriceBreakdown(
                base_price=Decimal("12000.00"),
                discount_amount=Decimal("0.00"),
                subtotal_after_discount=Decimal("12000.00"),
                tax_amount=Decimal("2160.00"),
                cgst=Decimal("1080.00"),
                sgst=Decimal("1080.00"),
                igst=Decimal("0"),
                total_amount_due=Decimal("14160.00"),
            ),
        )

        resp = self.mod.create_guest_booking({"body": self._body()}, None)

        self.assertEqual(201, resp["statusCode"])
        req = self.mock_create.call_args.args[0]
        self.assertEqual("asha@example.com", req.guest_email)

    def test_rate_limited_returns_429(self):
        self.mock_create.side_effect = RateLimited(
            "Too many booking attempts. Please try again in 50 minutes.", retry_after=3000
        )

        resp = self.mod.create_guest_booking({"body": self._body()}, None)

        self.assertEqual(429, resp["statusCode"])
        self.assertEqual("3000", resp["headers"]["Retry-After"])
        self.assertIn("50 minutes", json.loads(resp["body"])["message"])

    def test_conflict_returns_409(self):
        self.mock_create.side_effect = AvailabilityConflict("taken")
        resp = self.mod.create_guest_booking({"body": self._body()}, None)
        self.assertEqual(409, resp["statusCode"])


if __name__ == "__main__":
    unittest.main()
