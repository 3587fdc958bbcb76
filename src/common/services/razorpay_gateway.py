import logging
from typing import Dict, Optional

import razorpay
from razorpay.errors import BadRequestError, ServerError
from razorpay.errors import GatewayError as RazorpaySdkError
from razorpay.errors import SignatureVerificationError as RazorpaySignatureError
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout

from common.models.payments import GatewayOrder, GatewayPayment
from common.utils.custom_exceptions import GatewayError, GatewayUnavailable

logger = logging.getLogger(__name__)

CAPTURED = "captured"


class RazorpayGateway:
    """Thin wrapper over the Razorpay client that speaks our payment models."""

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        client: Optional[razorpay.Client] = None,
        timeout: float = 10,
    ):
        self.key_id = key_id
        self.client = client if client else razorpay.Client(auth=(key_id, key_secret))
        self.timeout = timeout

    def _call(self, action: str, func, *args):
        try:
            return func(*args, timeout=self.timeout)
        except (Timeout, RequestsConnectionError) as err:
            logger.error(f"Razorpay {action} unreachable: {err}")
            raise GatewayUnavailable("Payment gateway is unreachable. Please try again.") from err
        except ServerError as err:
            logger.error(f"Razorpay {action} server error: {err}")
            raise GatewayUnavailable("Payment gateway is temporarily unavailable.") from err
        except (BadRequestError, RazorpaySdkError) as err:
            logger.error(f"Razorpay {action} rejected: {err}")
            raise GatewayError("Payment gateway rejected the request") from err

    def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> GatewayOrder:
        data = self._call(
            "order create",
            self.client.order.create,
            {
                "amount": amount_minor,
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )
        logger.info(f"Created Razorpay order {data['id']} for receipt {receipt}")
        return GatewayOrder(
            order_id=data["id"],
            amount_minor=int(data["amount"]),
            currency=data["currency"],
            gateway_key=self.key_id,
            receipt=data.get("receipt", receipt),
        )

    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        data = self._call("payment fetch", self.client.payment.fetch, payment_id)
        return GatewayPayment(
            payment_id=data["id"],
            order_id=data.get("order_id"),
            status=data["status"],
            amount_minor=int(data["amount"]),
            currency=data["currency"],
            method=data.get("method") or "unknown",
        )

    def verify_signature(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        """Checks the checkout callback signature over order_id|payment_id."""
        if not signature:
            return False
        try:
            verified = self.client.utility.verify_payment_signature(
                {
                    "razorpay_order_id": order_id,
                    "razorpay_payment_id": payment_id,
                    "razorpay_signature": signature,
                }
            )
        except RazorpaySignatureError:
            return False
        return bool(verified)
