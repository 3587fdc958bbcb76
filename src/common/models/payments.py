from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional


class PaymentRecordStatus(str, Enum):
    SUCCESSFUL = "Successful"
    FAILED = "Failed"


class AttemptStatus(str, Enum):
    INITIATED = "initiated"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentStage(str, Enum):
    CREATED = "Created"
    ORDER_INITIATED = "OrderInitiated"
    GATEWAY_SUCCESS = "GatewaySuccess"
    GATEWAY_CANCELLED = "GatewayCancelled"
    GATEWAY_FAILED = "GatewayFailed"
    VERIFIED = "Verified"
    VERIFICATION_FAILED = "VerificationFailed"


@dataclass
class Payment:
    transaction_id: str
    booking_id: str
    order_id: str
    amount: Decimal
    currency: str
    method: str
    status: PaymentRecordStatus
    gateway: str = "razorpay"
    failure_reason: Optional[str] = None
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentAttempt:
    booking_id: str
    order_id: str
    amount: Decimal
    currency: str
    status: AttemptStatus = AttemptStatus.INITIATED
    failure_code: Optional[str] = None
    failure_description: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount_minor: int
    currency: str
    gateway_key: str
    receipt: str


@dataclass(frozen=True)
class GatewayPayment:
    payment_id: str
    order_id: Optional[str]
    status: str
    amount_minor: int
    currency: str
    method: str


@dataclass(frozen=True)
class VerificationResult:
    booking_id: str
    payment_id: str
    stage: PaymentStage
    already_confirmed: bool = False


@dataclass(frozen=True)
class FailureOutcome:
    booking_id: str
    order_id: str
    stage: PaymentStage
    message: str
    retryable: bool = True
