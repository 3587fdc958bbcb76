import unittest
from unittest.mock import MagicMock
from datetime import date, datetime, timezone
from dataclasses import replace
from decimal import Decimal
from botocore.exceptions import ClientError

from common.repository.booking_repo import BookingRepository
from common.models.bookings import (
    Booking,
    BookingStatus,
    BookingType,
    ExperienceSlot,
    GuestContact,
    PaymentStatus,
    PropertyStay,
)
from common.models.catalog import ExperienceInstance
from common.models.payments import Payment, PaymentRecordStatus
from common.models.pricing import AppliedDiscount, PriceBreakdown
from common.utils.custom_exceptions import AvailabilityConflict, DuplicateReference


def make_breakdown(**overrides):
    values = dict(
        base_price=Decimal("12000.00"),
        discount_amount=Decimal("1200.00"),
        subtotal_after_discount=Decimal("10800.00"),
        tax_amount=Decimal("1944.00"),
        cgst=Decimal("972.00"),
        sgst=Decimal("972.00"),
        igst=Decimal("0"),
        total_amount_due=Decimal("12744.00"),
        nights=3,
        applied_discounts=[AppliedDiscount("Base Discount", Decimal("10"), Decimal("1200.00"))],
    )
    values.update(overrides)
    return PriceBreakdown(**values)


def cancelled(*codes):
    return ClientError(
        {
            "Error": {"Code": "TransactionCanceledException", "Message": "cancelled"},
            "CancellationReasons": [{"Code": code} for code in codes],
        },
        "TransactWriteItems",
    )


class TestBookingRepository(unittest.TestCase):

    def setUp(self):
        self.table = MagicMock()
        self.table.name = "test-table"
        self.client = MagicMock()

        self.table.meta.client = self.client
        self.repo = BookingRepository(self.table, self.client)

        self.created_at = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)
        self.booking = Booking(
            booking_id="b1",
            booking_reference="BK-261001-ABCDWXYZ",
            booking_type=BookingType.PROPERTY,
            price_breakdown=make_breakdown(),
            user_id="u1",
            contact_email="test@example.com",
            stay=PropertyStay("p1", date(2026, 11, 1), date(2026, 11, 4), 2),
            created_at=self.created_at,
        )
        self.instance = ExperienceInstance(
            instance_id="i1", experience_id="e1", max_capacity=8, current_attendees=5
        )
        self.experience_booking = Booking(
            booking_id="b2",
            booking_reference="BK-261001-EFGH1234",
            booking_type=BookingType.EXPERIENCE,
            price_breakdown=make_breakdown(nights=None, applied_discounts=[]),
            guest=GuestContact("Asha Rao", "asha@example.com", "+919999999999"),
            slot=ExperienceSlot("i1", 2, "e1"),
            created_at=self.created_at,
        )

    def test_naive_created_at_is_rejected(self):
        with self.assertRaises(ValueError):
            self.repo.add_booking(replace(self.booking, created_at=datetime.now()))
        self.client.transact_write_items.assert_not_called()

    def test_add_property_booking_claims_every_night(self):
        self.repo.add_booking(self.booking)

        _, kwargs = self.client.transact_write_items.call_args
        items = kwargs["TransactItems"]
        # booking, reference, user index, email index, stay, three nights
        self.assertEqual(8, len(items))

        booking_put = items[0]["Put"]
        self.assertEqual("BOOKING#b1", booking_put["Item"]["pk"])
        self.assertEqual("Pending Payment", booking_put["Item"]["booking_status"])
        self.assertEqual("Unpaid", booking_put["Item"]["payment_status"])
        self.assertEqual(Decimal("12744.00"), booking_put["Item"]["total_amount_due"])
        self.assertEqual("attribute_not_exists(pk)", booking_put["ConditionExpression"])

        self.assertEqual("REFERENCE#BK-261001-ABCDWXYZ", items[1]["Put"]["Item"]["pk"])
        self.assertEqual("USER#u1", items[2]["Put"]["Item"]["pk"])
        self.assertEqual("EMAIL#test@example.com", items[3]["Put"]["Item"]["pk"])
        self.assertEqual(
            "STAY#2026-11-01#BOOKING#b1", items[4]["Put"]["Item"]["sk"]
        )

        nights = [item["Put"]["Item"]["sk"] for item in items[5:]]
        self.assertEqual(
            ["NIGHT#2026-11-01", "NIGHT#2026-11-02", "NIGHT#2026-11-03"], nights
        )
        for item in items[5:]:
            self.assertEqual("attribute_not_exists(sk)", item["Put"]["ConditionExpression"])

    def test_add_experience_booking_bounds_capacity(self):
        self.repo.add_booking(self.experience_booking, instance=self.instance)

        _, kwargs = self.client.transact_write_items.call_args
        items = kwargs["TransactItems"]
        # booking, reference, email index, capacity update
        self.assertEqual(4, len(items))
        update = items[3]["Update"]
        self.assertEqual({"pk": "INSTANCE#i1", "sk": "DETAILS"}, update["Key"])
        self.assertEqual(2, update["ExpressionAttributeValues"][":count"])
        self.assertEqual(8, update["ExpressionAttributeValues"][":max"])
        self.assertEqual(6, update["ExpressionAttributeValues"][":threshold"])
        self.assertIn("#current <= :threshold", update["ConditionExpression"])

    def test_add_experience_booking_requires_instance(self):
        with self.assertRaises(ValueError):
            self.repo.add_booking(self.experience_booking)

    def test_lost_night_lock_is_availability_conflict(self):
        self.client.transact_write_items.side_effect = cancelled(
            "None", "None", "None", "None", "None", "None", "ConditionalCheckFailed", "None"
        )
        with self.assertRaises(AvailabilityConflict):
            self.repo.add_booking(self.booking)

    def test_over_capacity_is_availability_conflict(self):
        self.client.transact_write_items.side_effect = cancelled(
            "None", "None", "None", "ConditionalCheckFailed"
        )
        with self.assertRaises(AvailabilityConflict):
            self.repo.add_booking(self.experience_booking, instance=self.instance)

    def test_reference_collision_raises_duplicate_reference(self):
        self.client.transact_write_items.side_effect = cancelled(
            "None", "ConditionalCheckFailed", "None", "None", "None"
        )
        with self.assertRaises(DuplicateReference):
            self.repo.add_booking(self.booking)

    def test_other_store_errors_propagate(self):
        self.client.transact_write_items.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}},
            "TransactWriteItems",
        )
        with self.assertRaises(ClientError):
            self.repo.add_booking(self.booking)

    def test_get_booking_by_id_rebuilds_booking(self):
        self.table.get_item.return_value = {"Item": self.repo._booking_item(self.booking)}

        booking = self.repo.get_booking_by_id("b1")

        self.assertEqual("b1", booking.booking_id)
        self.assertEqual(BookingType.PROPERTY, booking.booking_type)
        self.assertEqual(date(2026, 11, 1), booking.stay.check_in)
        self.assertEqual(3, booking.stay.nights)
        self.assertEqual(Decimal("12744.00"), booking.total_amount_due)
        self.assertEqual("Base Discount", booking.price_breakdown.applied_discounts[0].name)
        self.assertEqual(self.created_at, booking.created_at)

    def test_get_guest_booking_by_id(self):
        self.table.get_item.return_value = {
            "Item": self.repo._booking_item(self.experience_booking)
        }

        booking = self.repo.get_booking_by_id("b2")

        self.assertTrue(booking.is_guest)
        self.assertEqual("asha@example.com", booking.contact_email)
        self.assertEqual(2, booking.slot.number_of_attendees)

    def test_get_booking_by_id_missing(self):
        self.table.get_item.return_value = {}
        self.assertIsNone(self.repo.get_booking_by_id("nope"))

    def test_get_user_bookings_follows_pages(self):
        self.table.query.side_effect = [
            {"Items": [{"booking_id": "b1"}], "LastEvaluatedKey": {"pk": "x"}},
            {"Items": [{"booking_id": "b3"}]},
        ]
        self.table.get_item.side_effect = [
            {"Item": self.repo._booking_item(self.booking)},
            {},
        ]

        bookings = self.repo.get_user_bookings("u1")

        self.assertEqual(["b1"], [b.booking_id for b in bookings])
        self.assertEqual(2, self.table.query.call_count)

    def test_has_bookings_for_email(self):
        self.table.query.return_value = {"Items": [{"booking_id": "b1"}]}
        self.assertTrue(self.repo.has_bookings_for_email("test@example.com"))

        self.table.query.return_value = {"Items": []}
        self.assertFalse(self.repo.has_bookings_for_email("new@example.com"))

    def test_get_property_stays(self):
        self.table.query.return_value = {
            "Items": [
                {
                    "booking_id": "b9",
                    "check_in": "2026-10-30",
                    "check_out": "2026-11-02",
                    "booking_status": "Confirmed",
                }
            ]
        }

        stays = self.repo.get_property_stays("p1", date(2026, 11, 1), date(2026, 11, 4))

        self.assertEqual(1, len(stays))
        self.assertEqual(date(2026, 11, 2), stays[0].check_out)
        self.assertEqual(BookingStatus.CONFIRMED, stays[0].status)

    def test_get_property_stays_propagates_errors(self):
        self.table.query.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "boom"}}, "Query"
        )
        with self.assertRaises(ClientError):
            self.repo.get_property_stays("p1", date(2026, 11, 1), date(2026, 11, 4))

    def _payment(self):
        return Payment(
            transaction_id="pay_1",
            booking_id="b1",
            order_id="order_1",
            amount=Decimal("12744.00"),
            currency="INR",
            method="upi",
            status=PaymentRecordStatus.SUCCESSFUL,
        )

    def test_confirm_payment_writes_payment_and_booking_together(self):
        self.assertTrue(self.repo.confirm_payment(self.booking, self._payment()))

        _, kwargs = self.client.transact_write_items.call_args
        items = kwargs["TransactItems"]
        self.assertEqual(3, len(items))
        self.assertEqual("PAYMENT#pay_1", items[0]["Put"]["Item"]["pk"])
        self.assertEqual("attribute_not_exists(pk)", items[0]["Put"]["ConditionExpression"])
        values = items[1]["Update"]["ExpressionAttributeValues"]
        self.assertEqual(BookingStatus.CONFIRMED.value, values[":confirmed"])
        self.assertEqual(PaymentStatus.PAID.value, values[":paid"])
        self.assertEqual("pay_1", values[":payment_id"])
        self.assertEqual(self.repo._stay_key(self.booking), items[2]["Update"]["Key"])

    def test_confirm_payment_replay_returns_false(self):
        self.client.transact_write_items.side_effect = cancelled(
            "ConditionalCheckFailed", "ConditionalCheckFailed", "None"
        )
        self.assertFalse(self.repo.confirm_payment(self.booking, self._payment()))

    def test_cancel_unpaid_property_booking_releases_nights(self):
        self.assertTrue(self.repo.cancel_unpaid_booking(self.booking))

        _, kwargs = self.client.transact_write_items.call_args
        items = kwargs["TransactItems"]
        # status update, stay delete, three night deletes
        self.assertEqual(5, len(items))
        self.assertEqual(
            BookingStatus.CANCELLED.value,
            items[0]["Update"]["ExpressionAttributeValues"][":cancelled"],
        )
        self.assertEqual("NIGHT#2026-11-01", items[2]["Delete"]["Key"]["sk"])

    def test_cancel_unpaid_experience_booking_releases_capacity(self):
        self.assertTrue(self.repo.cancel_unpaid_booking(self.experience_booking))

        _, kwargs = self.client.transact_write_items.call_args
        update = kwargs["TransactItems"][1]["Update"]
        self.assertEqual("SET #current = #current - :count", update["UpdateExpression"])
        self.assertEqual(2, update["ExpressionAttributeValues"][":count"])

    def test_cancel_already_paid_booking_returns_false(self):
        self.client.transact_write_items.side_effect = cancelled("ConditionalCheckFailed", "None")
        self.assertFalse(self.repo.cancel_unpaid_booking(self.experience_booking))


if __name__ == "__main__":
    unittest.main()
