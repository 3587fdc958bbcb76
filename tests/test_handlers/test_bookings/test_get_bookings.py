import importlib
import json
import os
import unittest
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

from common.models.bookings import Booking, BookingType, GuestContact, PropertyStay
from common.models.pricing import PriceBreakdown
from common.utils.custom_exceptions import BookingAccessDenied, NotFoundException


def make_booking(booking_id="b1", user_id="u1", guest=None):
    return Booking(
        booking_id=booking_id,
        booking_reference="BK-261019-0K3FQ7ZA",
        booking_type=BookingType.PROPERTY,
        price_breakdown=PriceBreakdown(
            base_price=Decimal("12000.00"),
            discount_amount=Decimal("0.00"),
            subtotal_after_discount=Decimal("12000.00"),
            tax_amount=Decimal("2160.00"),
            cgst=Decimal("1080.00"),
            sgst=Decimal("1080.00"),
            igst=Decimal("0"),
            total_amount_due=Decimal("14160.00"),
            nights=3,
        ),
        user_id=user_id,
        guest=guest,
        stay=PropertyStay("p1", date(2026, 11, 1), date(2026, 11, 4), 2),
    )


class GetBookingsTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.env = patch.dict(os.environ, {"TABLE_NAME": "test-table"}, clear=False)
        cls.env.start()
        cls.resource = patch("boto3.resource")
        mock_res = cls.resource.start()
        mock_res.return_value.Table.return_value = MagicMock()
        import handlers.bookings.get_bookings as mod
        cls.mod = importlib.reload(mod)

    @classmethod
    def tearDownClass(cls):
        cls.resource.stop()
        cls.env.stop()

    def setUp(self):
        self.p_get_one = patch.object(self.mod.booking_service, "get_booking")
        self.p_get_all = patch.object(self.mod.booking_service, "get_user_bookings")
        self.p_get_guest = patch.object(self.mod.booking_service, "get_guest_bookings")
        self.mock_get_one = self.p_get_one.start()
        self.mock_get_all = self.p_get_all.start()
        self.mock_get_guest = self.p_get_guest.start()

    def tearDown(self):
        self.p_get_one.stop()
        self.p_get_all.stop()
        self.p_get_guest.stop()

    def _event(self, user_id="u1", booking_id=None, email=None, account_email=None):
        authorizer = {"user_id": user_id} if user_id else {}
        if account_email:
            authorizer["email"] = account_email
        return {
            "requestContext": {"authorizer": authorizer},
            "pathParameters": {"booking_id": booking_id} if booking_id else None,
            "queryStringParameters": {"email": email} if email else None,
        }

    def test_list_requires_user(self):
        resp = self.mod.get_bookings(self._event(user_id=None), None)
        self.assertEqual(401, resp["statusCode"])

    def test_list_user_bookings(self):
        self.mock_get_all.return_value = [make_booking()]

        resp = self.mod.get_bookings(self._event(), None)

        self.assertEqual(200, resp["statusCode"])
        data = json.loads(resp["body"])["data"]
        self.assertEqual(1, data["count"])
        self.assertEqual("Pending Payment", data["bookings"][0]["booking_status"])
        self.assertEqual("2026-11-01", data["bookings"][0]["check_in"])
        self.mock_get_guest.assert_not_called()

    def test_list_includes_guest_bookings_under_account_email(self):
        self.mock_get_all.return_value = [make_booking()]
        guest = GuestContact("Asha Rao", "asha@example.com", "+919876543210")
        self.mock_get_guest.return_value = [
            make_booking(),
            make_booking("b2", user_id=None, guest=guest),
        ]

        resp = self.mod.get_bookings(self._event(account_email="asha@example.com"), None)

        data = json.loads(resp["body"])["data"]
        self.assertEqual(2, data["count"])
        self.assertEqual(["b1", "b2"], [b["booking_id"] for b in data["bookings"]])
        self.mock_get_guest.assert_called_once_with("asha@example.com")

    def test_single_booking_for_guest(self):
        self.mock_get_one.return_value = make_booking()

        resp = self.mod.get_bookings(
            self._event(user_id=None, booking_id="b1", email="asha@example.com"), None
        )

        self.assertEqual(200, resp["statusCode"])
        self.mock_get_one.assert_called_once_with("b1", user_id=None, email="asha@example.com")

    def test_access_denied_returns_403(self):
        self.mock_get_one.side_effect = BookingAccessDenied("You do not have access to this booking")
        resp = self.mod.get_bookings(self._event(booking_id="b1"), None)
        self.assertEqual(403, resp["statusCode"])

    def test_missing_booking_returns_404(self):
        self.mock_get_one.side_effect = NotFoundException("booking", "b1", 404)
        resp = self.mod.get_bookings(self._event(booking_id="b1"), None)
        self.assertEqual(404, resp["statusCode"])

    def test_generic_error_returns_500(self):
        self.mock_get_all.side_effect = RuntimeError("boom")
        resp = self.mod.get_bookings(self._event(), None)
        self.assertEqual(500, resp["statusCode"])


if __name__ == "__main__":
    unittest.main()
