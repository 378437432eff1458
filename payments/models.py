"""
Purpose: Domain models for the Payment Ledger.
What it does:
- Payment: the settlement record of exactly one order (stored under the order id)
- GatewayRef: opaque gateway identifiers used to correlate callbacks
- PaymentHistoryEntry: append-only audit of every status change

Defines enums/constants:
- PaymentStatus = pending | processing | completed | failed | refunded | cancelled
- PAYMENT_TRANSITIONS: the legal status edges
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from orders.models import PaymentMethod

__all__ = [
    "GatewayRef",
    "Payment",
    "PaymentHistoryEntry",
    "PaymentMethod",
    "PaymentStatus",
    "PAYMENT_TRANSITIONS",
    "new_transaction_id",
]


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}),
    # the gateway took the money after we had given up on the attempt
    PaymentStatus.FAILED: frozenset({PaymentStatus.COMPLETED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}

# A new initiate() may reopen a payment in these states.
RETRYABLE_STATUSES = frozenset({PaymentStatus.FAILED, PaymentStatus.CANCELLED})

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def new_transaction_id() -> str:
    """TXN + epoch millis + random suffix."""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"TXN{int(time.time() * 1000)}{suffix}"


@dataclass(frozen=True)
class GatewayRef:
    name: str
    external_order_id: Optional[str] = None
    external_payment_id: Optional[str] = None
    signature: Optional[str] = None
    # What the client needs to finish checkout (client secret, redirect url...)
    checkout: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentHistoryEntry:
    status: PaymentStatus
    timestamp: datetime
    amount: Decimal
    note: str = ""


@dataclass
class Payment:
    id: str
    order_id: str
    customer_id: str
    amount: Decimal
    method: PaymentMethod
    transaction_id: str
    created_at: datetime
    currency: str = "INR"
    status: PaymentStatus = PaymentStatus.PENDING
    gateway: Optional[GatewayRef] = None
    gateway_response: Optional[Dict[str, Any]] = None
    history: List[PaymentHistoryEntry] = field(default_factory=list)
    attempts: int = 1
    failure_reason: Optional[str] = None

    refund_amount: Optional[Decimal] = None
    refund_reason: Optional[str] = None
    refund_date: Optional[datetime] = None

    def can_move_to(self, status: PaymentStatus) -> bool:
        return status in PAYMENT_TRANSITIONS[self.status]

    def record(self, status: PaymentStatus, at: datetime, note: str = "", amount: Optional[Decimal] = None) -> None:
        self.status = status
        self.history.append(
            PaymentHistoryEntry(status=status, timestamp=at, amount=self.amount if amount is None else amount, note=note)
        )

    @property
    def correlation_id(self) -> Optional[str]:
        return self.gateway.external_order_id if self.gateway else None
