from botocore.exceptions import ClientError
import logging
from typing import Optional, List
from boto3.dynamodb.conditions import Key
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
from common.models.payments import Payment
from common.models.pricing import AppliedDiscount, CompetitorRate, PriceBreakdown
from common.utils.constants import MAX_STAY
from common.utils.custom_exceptions import AvailabilityConflict, DuplicateReference
from common.utils.datetime_normaliser import from_iso_date, from_iso_string, to_iso_string
from decimal import Decimal
from datetime import date, timedelta
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from types_boto3_dynamodb.service_resource import Table
    from types_boto3_dynamodb import DynamoDBClient
else:
    Table = object
    DynamoDBClient = object


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StayRecord:
    booking_id: str
    check_in: date
    check_out: date
    status: BookingStatus


def _nights(check_in: date, check_out: date) -> List[date]:
    return [check_in + timedelta(days=i) for i in range((check_out - check_in).days)]


def _cancellation_codes(err: ClientError) -> List[str]:
    reasons = err.response.get("CancellationReasons", [])
    return [reason.get("Code", "None") for reason in reasons]


def _is_transaction_cancelled(err: ClientError) -> bool:
    return err.response.get("Error", {}).get("Code") == "TransactionCanceledException"


def _breakdown_to_item(breakdown: PriceBreakdown) -> dict:
    return {
        "base_price": breakdown.base_price,
        "discount_amount": breakdown.discount_amount,
        "subtotal_after_discount": breakdown.subtotal_after_discount,
        "tax_percentage": breakdown.tax_percentage,
        "tax_amount": breakdown.tax_amount,
        "cgst": breakdown.cgst,
        "sgst": breakdown.sgst,
        "igst": breakdown.igst,
        "total_amount_due": breakdown.total_amount_due,
        "currency": breakdown.currency,
        "cleaning_fee": breakdown.cleaning_fee,
        "addon_experiences_total": breakdown.addon_experiences_total,
        "nights": breakdown.nights,
        "applied_discounts": [
            {"name": d.name, "percentage": d.percentage, "amount": d.amount}
            for d in breakdown.applied_discounts
        ],
        "discount_code": breakdown.discount_code,
        "code_discount_amount": breakdown.code_discount_amount,
        "competitor_rates": [
            {
                "platform": r.platform,
                "rate_per_night": r.rate_per_night,
                "is_available": r.is_available,
            }
            for r in breakdown.competitor_rates
        ],
        "savings_from_competitors": breakdown.savings_from_competitors,
    }


def _breakdown_from_item(item: dict) -> PriceBreakdown:
    def dec(key):
        return Decimal(str(item.get(key, 0)))

    return PriceBreakdown(
        base_price=dec("base_price"),
        discount_amount=dec("discount_amount"),
        subtotal_after_discount=dec("subtotal_after_discount"),
        tax_amount=dec("tax_amount"),
        cgst=dec("cgst"),
        sgst=dec("sgst"),
        igst=dec("igst"),
        total_amount_due=dec("total_amount_due"),
        currency=item["currency"],
        tax_percentage=int(item.get("tax_percentage", 18)),
        cleaning_fee=dec("cleaning_fee"),
        addon_experiences_total=dec("addon_experiences_total"),
        nights=int(item["nights"]) if item.get("nights") is not None else None,
        applied_discounts=[
            AppliedDiscount(
                name=d["name"],
                percentage=Decimal(str(d["percentage"])),
                amount=Decimal(str(d["amount"])),
            )
            for d in item.get("applied_discounts", [])
        ],
        discount_code=item.get("discount_code"),
        code_discount_amount=dec("code_discount_amount"),
        competitor_rates=[
            CompetitorRate(
                platform=r["platform"],
                rate_per_night=Decimal(str(r["rate_per_night"])),
                is_available=bool(r.get("is_available", True)),
            )
            for r in item.get("competitor_rates", [])
        ],
        savings_from_competitors=dec("savings_from_competitors"),
    )


class BookingRepository:
    def __init__(self, table: Table, client: DynamoDBClient = None):
        self.table = table
        self.client = client if client else table.meta.client

    def _booking_item(self, booking: Booking) -> dict:
        item = {
            "pk": f"BOOKING#{booking.booking_id}",
            "sk": "DETAILS",
            "booking_type": booking.booking_type.value,
            "booking_reference": booking.booking_reference,
            "booking_status": booking.status.value,
            "payment_status": booking.payment_status.value,
            "price_breakdown": _breakdown_to_item(booking.price_breakdown),
            "total_amount_due": booking.total_amount_due,
            "currency": booking.currency,
            "created_at": to_iso_string(booking.created_at),
        }
        if booking.user_id:
            item["user_id"] = booking.user_id
        if booking.guest:
            item["guest_name"] = booking.guest.name
            item["guest_email"] = booking.guest.email
            item["guest_phone"] = booking.guest.phone
        if booking.contact_email:
            item["contact_email"] = booking.contact_email
        if booking.stay:
            item["property_id"] = booking.stay.property_id
            item["check_in"] = booking.stay.check_in.isoformat()
            item["check_out"] = booking.stay.check_out.isoformat()
            item["number_of_guests"] = booking.stay.number_of_guests
        if booking.slot:
            item["instance_id"] = booking.slot.instance_id
            item["number_of_attendees"] = booking.slot.number_of_attendees
            if booking.slot.experience_id:
                item["experience_id"] = booking.slot.experience_id
        if booking.special_requests:
            item["special_requests"] = booking.special_requests
        if booking.discount_code:
            item["discount_code"] = booking.discount_code
        return item

    def _to_domain(self, item: dict) -> Booking:
        booking_type = BookingType(item["booking_type"])
        guest = None
        if item.get("guest_email"):
            guest = GuestContact(
                name=item["guest_name"],
                email=item["guest_email"],
                phone=item["guest_phone"],
            )
        stay = None
        slot = None
        if booking_type is BookingType.PROPERTY:
            stay = PropertyStay(
                property_id=item["property_id"],
                check_in=from_iso_date(item["check_in"]),
                check_out=from_iso_date(item["check_out"]),
                number_of_guests=int(item.get("number_of_guests", 1)),
            )
        else:
            slot = ExperienceSlot(
                instance_id=item["instance_id"],
                number_of_attendees=int(item["number_of_attendees"]),
                experience_id=item.get("experience_id"),
            )

        return Booking(
            booking_id=item["pk"].removeprefix("BOOKING#"),
            booking_reference=item["booking_reference"],
            booking_type=booking_type,
            price_breakdown=_breakdown_from_item(item["price_breakdown"]),
            user_id=item.get("user_id"),
            guest=guest,
            contact_email=item.get("contact_email"),
            stay=stay,
            slot=slot,
            status=BookingStatus(item["booking_status"]),
            payment_status=PaymentStatus(item["payment_status"]),
            payment_id=item.get("payment_id"),
            amount_paid=(
                Decimal(str(item["amount_paid"])) if item.get("amount_paid") is not None else None
            ),
            confirmed_at=(
                from_iso_string(item["confirmed_at"]) if item.get("confirmed_at") else None
            ),
            special_requests=item.get("special_requests"),
            discount_code=item.get("discount_code"),
            created_at=from_iso_string(item["created_at"]),
        )

    def add_booking(self, booking: Booking, instance: Optional[ExperienceInstance] = None):
        """Writes the booking and everything it holds in one transaction.

        Property bookings claim one lock item per night; experience bookings
        bump current_attendees only while the result stays within capacity.
        Either claim failing cancels the whole write.
        """
        created_iso = to_iso_string(booking.created_at)
        index_item = {
            "booking_id": booking.booking_id,
            "booking_reference": booking.booking_reference,
            "booking_type": booking.booking_type.value,
            "created_at": created_iso,
        }

        transact_items = [
            {
                "Put": {
                    "TableName": self.table.name,
                    "Item": self._booking_item(booking),
                    "ConditionExpression": "attribute_not_exists(pk)",
                }
            },
            {
                "Put": {
                    "TableName": self.table.name,
                    "Item": {
                        "pk": f"REFERENCE#{booking.booking_reference}",
                        "sk": "DETAILS",
                        "booking_id": booking.booking_id,
                    },
                    "ConditionExpression": "attribute_not_exists(pk)",
                }
            },
        ]
        reference_index = 1

        if booking.user_id:
            transact_items.append(
                {
                    "Put": {
                        "TableName": self.table.name,
                        "Item": {
                            "pk": f"USER#{booking.user_id}",
                            "sk": f"BOOKING#{booking.booking_id}",
                            **index_item,
                        },
                    }
                }
            )
        if booking.contact_email:
            transact_items.append(
                {
                    "Put": {
                        "TableName": self.table.name,
                        "Item": {
                            "pk": f"EMAIL#{booking.contact_email}",
                            "sk": f"BOOKING#{booking.booking_id}",
                            **index_item,
                        },
                    }
                }
            )

        claim_start = len(transact_items)
        if booking.booking_type is BookingType.PROPERTY:
            stay = booking.stay
            transact_items.append(
                {
                    "Put": {
                        "TableName": self.table.name,
                        "Item": {
                            "pk": f"PROPERTY#{stay.property_id}",
                            "sk": f"STAY#{stay.check_in.isoformat()}#BOOKING#{booking.booking_id}",
                            "booking_id": booking.booking_id,
                            "check_in": stay.check_in.isoformat(),
                            "check_out": stay.check_out.isoformat(),
                            "booking_status": booking.status.value,
                        },
                    }
                }
            )
            for night in _nights(stay.check_in, stay.check_out):
                transact_items.append(
                    {
                        "Put": {
                            "TableName": self.table.name,
                            "Item": {
                                "pk": f"PROPERTY#{stay.property_id}",
                                "sk": f"NIGHT#{night.isoformat()}",
                                "booking_id": booking.booking_id,
                            },
                            "ConditionExpression": "attribute_not_exists(sk)",
                        }
                    }
                )
        elif booking.booking_type is BookingType.EXPERIENCE:
            if instance is None:
                raise ValueError("experience bookings need the instance being reserved")
            attendees = booking.slot.number_of_attendees
            transact_items.append(
                {
                    "Update": {
                        "TableName": self.table.name,
                        "Key": {"pk": f"INSTANCE#{instance.instance_id}", "sk": "DETAILS"},
                        "UpdateExpression": "SET #current = #current + :count",
                        "ConditionExpression": (
                            "attribute_exists(pk) AND #max = :max AND #current <= :threshold"
                        ),
                        "ExpressionAttributeNames": {
                            "#current": "current_attendees",
                            "#max": "max_capacity",
                        },
                        "ExpressionAttributeValues": {
                            ":count": attendees,
                            ":max": instance.max_capacity,
                            ":threshold": instance.max_capacity - attendees,
                        },
                    }
                }
            )

        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as err:
            if _is_transaction_cancelled(err):
                codes = _cancellation_codes(err)
                if len(codes) > reference_index and codes[reference_index] == "ConditionalCheckFailed":
                    raise DuplicateReference(booking.booking_reference) from err
                if any(code == "ConditionalCheckFailed" for code in codes[claim_start:]):
                    logger.info(
                        f"Booking {booking.booking_id} lost the availability race: {codes}"
                    )
                    raise AvailabilityConflict(
                        "The selected dates or slots are no longer available"
                    ) from err
            logger.error(f"Error creating booking {booking.booking_id}: {err}")
            raise

    def get_booking_by_id(self, booking_id: str) -> Optional[Booking]:
        try:
            response = self.table.get_item(
                Key={"pk": f"BOOKING#{booking_id}", "sk": "DETAILS"}
            )
        except ClientError as err:
            logger.error(f"Error retrieving booking {booking_id}: {err}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return self._to_domain(item)

    def _query_index(self, pk: str) -> List[dict]:
        items = []
        kwargs = {
            "KeyConditionExpression": Key("pk").eq(pk) & Key("sk").begins_with("BOOKING#")
        }
        try:
            while True:
                response = self.table.query(**kwargs)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as err:
            logger.error(f"Error retrieving bookings for {pk}: {err}")
            raise
        return items

    def _load_indexed(self, pk: str) -> List[Booking]:
        bookings = []
        for item in self._query_index(pk):
            booking = self.get_booking_by_id(item["booking_id"])
            if booking is not None:
                bookings.append(booking)
        return bookings

    def get_user_bookings(self, user_id: str) -> List[Booking]:
        return self._load_indexed(f"USER#{user_id}")

    def get_email_bookings(self, email: str) -> List[Booking]:
        return self._load_indexed(f"EMAIL#{email}")

    def has_bookings_for_email(self, email: str) -> bool:
        try:
            response = self.table.query(
                KeyConditionExpression=Key("pk").eq(f"EMAIL#{email}")
                & Key("sk").begins_with("BOOKING#"),
                Limit=1,
            )
        except ClientError as err:
            logger.error(f"Error checking booking history for {email}: {err}")
            raise
        return bool(response.get("Items"))

    def get_property_stays(
        self, property_id: str, check_in: date, check_out: date
    ) -> List[StayRecord]:
        """Stays that start early enough to overlap the requested range."""
        lower = (check_in - timedelta(days=MAX_STAY)).isoformat()
        upper = check_out.isoformat()
        kwargs = {
            "KeyConditionExpression": Key("pk").eq(f"PROPERTY#{property_id}")
            & Key("sk").between(f"STAY#{lower}", f"STAY#{upper}")
        }
        stays = []
        try:
            while True:
                response = self.table.query(**kwargs)
                for item in response.get("Items", []):
                    stays.append(
                        StayRecord(
                            booking_id=item["booking_id"],
                            check_in=from_iso_date(item["check_in"]),
                            check_out=from_iso_date(item["check_out"]),
                            status=BookingStatus(item["booking_status"]),
                        )
                    )
                if "LastEvaluatedKey" not in response:
                    break
                kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]
        except ClientError as err:
            logger.error(
                f"Error retrieving stays for property {property_id} between {lower} and {upper}: {err}"
            )
            raise
        return stays

    def _stay_key(self, booking: Booking) -> dict:
        return {
            "pk": f"PROPERTY#{booking.stay.property_id}",
            "sk": f"STAY#{booking.stay.check_in.isoformat()}#BOOKING#{booking.booking_id}",
        }

    def confirm_payment(self, booking: Booking, payment: Payment) -> bool:
        """Records the successful payment and confirms the booking atomically.

        Returns False when the transaction id was already recorded or the
        booking is no longer awaiting payment.
        """
        confirmed_at = to_iso_string(payment.processed_at)
        transact_items = [
            {
                "Put": {
                    "TableName": self.table.name,
                    "Item": {
                        "pk": f"PAYMENT#{payment.transaction_id}",
                        "sk": "DETAILS",
                        "booking_id": payment.booking_id,
                        "order_id": payment.order_id,
                        "amount": payment.amount,
                        "currency": payment.currency,
                        "method": payment.method,
                        "payment_status": payment.status.value,
                        "gateway": payment.gateway,
                        "processed_at": confirmed_at,
                    },
                    "ConditionExpression": "attribute_not_exists(pk)",
                }
            },
            {
                "Update": {
                    "TableName": self.table.name,
                    "Key": {"pk": f"BOOKING#{booking.booking_id}", "sk": "DETAILS"},
                    "UpdateExpression": (
                        "SET #booking_status = :confirmed, #payment_status = :paid, "
                        "#payment_id = :payment_id, #amount_paid = :amount, "
                        "#confirmed_at = :confirmed_at"
                    ),
                    "ConditionExpression": (
                        "#booking_status = :pending AND #payment_status <> :paid"
                    ),
                    "ExpressionAttributeNames": {
                        "#booking_status": "booking_status",
                        "#payment_status": "payment_status",
                        "#payment_id": "payment_id",
                        "#amount_paid": "amount_paid",
                        "#confirmed_at": "confirmed_at",
                    },
                    "ExpressionAttributeValues": {
                        ":confirmed": BookingStatus.CONFIRMED.value,
                        ":paid": PaymentStatus.PAID.value,
                        ":pending": BookingStatus.PENDING_PAYMENT.value,
                        ":payment_id": payment.transaction_id,
                        ":amount": payment.amount,
                        ":confirmed_at": confirmed_at,
                    },
                }
            },
        ]
        if booking.booking_type is BookingType.PROPERTY:
            transact_items.append(
                {
                    "Update": {
                        "TableName": self.table.name,
                        "Key": self._stay_key(booking),
                        "UpdateExpression": "SET #booking_status = :confirmed",
                        "ExpressionAttributeNames": {"#booking_status": "booking_status"},
                        "ExpressionAttributeValues": {
                            ":confirmed": BookingStatus.CONFIRMED.value
                        },
                    }
                }
            )

        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as err:
            if _is_transaction_cancelled(err) and "ConditionalCheckFailed" in _cancellation_codes(err):
                logger.info(
                    f"Payment {payment.transaction_id} for booking {booking.booking_id} already applied"
                )
                return False
            logger.error(f"Error confirming booking {booking.booking_id}: {err}")
            raise
        return True

    def cancel_unpaid_booking(self, booking: Booking) -> bool:
        """Cancels a booking still awaiting payment and releases what it holds."""
        transact_items = [
            {
                "Update": {
                    "TableName": self.table.name,
                    "Key": {"pk": f"BOOKING#{booking.booking_id}", "sk": "DETAILS"},
                    "UpdateExpression": "SET #booking_status = :cancelled",
                    "ConditionExpression": (
                        "#booking_status = :pending AND #payment_status <> :paid"
                    ),
                    "ExpressionAttributeNames": {
                        "#booking_status": "booking_status",
                        "#payment_status": "payment_status",
                    },
                    "ExpressionAttributeValues": {
                        ":cancelled": BookingStatus.CANCELLED.value,
                        ":pending": BookingStatus.PENDING_PAYMENT.value,
                        ":paid": PaymentStatus.PAID.value,
                    },
                }
            }
        ]
        if booking.booking_type is BookingType.PROPERTY:
            stay = booking.stay
            transact_items.append(
                {"Delete": {"TableName": self.table.name, "Key": self._stay_key(booking)}}
            )
            for night in _nights(stay.check_in, stay.check_out):
                transact_items.append(
                    {
                        "Delete": {
                            "TableName": self.table.name,
                            "Key": {
                                "pk": f"PROPERTY#{stay.property_id}",
                                "sk": f"NIGHT#{night.isoformat()}",
                            },
                            "ConditionExpression": "booking_id = :booking_id",
                            "ExpressionAttributeValues": {":booking_id": booking.booking_id},
                        }
                    }
                )
        elif booking.booking_type is BookingType.EXPERIENCE:
            transact_items.append(
                {
                    "Update": {
                        "TableName": self.table.name,
                        "Key": {"pk": f"INSTANCE#{booking.slot.instance_id}", "sk": "DETAILS"},
                        "UpdateExpression": "SET #current = #current - :count",
                        "ConditionExpression": "#current >= :count",
                        "ExpressionAttributeNames": {"#current": "current_attendees"},
                        "ExpressionAttributeValues": {
                            ":count": booking.slot.number_of_attendees
                        },
                    }
                }
            )

        try:
            self.client.transact_write_items(TransactItems=transact_items)
        except ClientError as err:
            if _is_transaction_cancelled(err) and "ConditionalCheckFailed" in _cancellation_codes(err):
                logger.info(f"Booking {booking.booking_id} is no longer awaiting payment")
                return False
            logger.error(f"Error cancelling booking {booking.booking_id}: {err}")
            raise
        return True
