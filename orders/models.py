"""
Purpose: Domain models for the Orders capability.
What it does:
- Defines core data structures:
- Order (parties, line items, amounts, status, assignment slot, history)
- LineItem, Address, StatusChange
- ProducerProfile (pickup location + running rating)
- Actor (who is calling: id + role)

Defines enums/constants:
- OrderStatus = pending | confirmed | preparing | ready_for_pickup | picked_up | in_transit | delivered | cancelled
- DeliveryPartnerStatus = pending | accepted | declined
- PaymentMethod = upi | card | net_banking | cod
- OrderPaymentStatus = pending | paid | failed | refunded

Rule: No store access, no transition rules. Models only.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional, Tuple
import uuid

LatLon = Tuple[float, float]

CENTS = Decimal("0.01")

# Order-level on-time check allows this much slack past the estimate.
ON_TIME_GRACE = timedelta(hours=2)


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class Role(str, Enum):
    CUSTOMER = "customer"
    PRODUCER = "producer"
    DELIVERY_PARTNER = "delivery_partner"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY_FOR_PICKUP = "ready_for_pickup"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Statuses during which the order is still open to delivery partners.
ASSIGNABLE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY_FOR_PICKUP,
)


class DeliveryPartnerStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class PaymentMethod(str, Enum):
    UPI = "upi"
    CARD = "card"
    NET_BANKING = "net_banking"
    COD = "cod"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass(frozen=True)
class LineItem:
    product_id: str
    quantity: int
    unit_price: Decimal
    total: Decimal

    @classmethod
    def new(cls, product_id: str, quantity: int, unit_price) -> LineItem:
        price = money(unit_price)
        return cls(product_id=product_id, quantity=quantity, unit_price=price, total=money(price * quantity))


@dataclass(frozen=True)
class Address:
    street: str
    city: str
    state: str
    zip_code: str
    coordinates: Optional[LatLon] = None


@dataclass(frozen=True)
class StatusChange:
    status: OrderStatus
    actor_id: Optional[str]
    timestamp: datetime
    note: str = ""


@dataclass
class ProducerProfile:
    """
    The producer (farm) as dispatch and rating see it.
    `rated_orders` makes the rating update idempotent per order.
    """
    id: str
    name: str = ""
    location: Optional[LatLon] = None
    rating: float = 0.0
    total_ratings: int = 0
    rated_orders: List[str] = field(default_factory=list)


@dataclass
class Order:
    """
    A customer's commitment to buy line items from one producer.
    """
    id: str
    order_number: str
    customer_id: str
    producer_id: str
    items: List[LineItem]
    delivery_address: Address
    payment_method: PaymentMethod
    created_at: datetime

    subtotal: Decimal = Decimal("0.00")
    delivery_fee: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    final_amount: Decimal = Decimal("0.00")

    order_status: OrderStatus = OrderStatus.PENDING
    status_history: List[StatusChange] = field(default_factory=list)
    payment_status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    payment_id: Optional[str] = None

    # Assignment slot, contested by delivery partners
    delivery_partner_id: Optional[str] = None
    delivery_partner_status: DeliveryPartnerStatus = DeliveryPartnerStatus.PENDING
    delivery_partner_assigned_at: Optional[datetime] = None
    delivery_partner_accepted_at: Optional[datetime] = None
    assignment_count: int = 0
    offered_partner_ids: List[str] = field(default_factory=list)

    pickup_location: Optional[LatLon] = None
    delivery_instructions: str = ""
    priority: str = "normal"

    estimated_delivery_time: Optional[datetime] = None
    actual_delivery_time: Optional[datetime] = None

    customer_rating: Optional[int] = None
    customer_review: str = ""

    cancellation_reason: Optional[str] = None
    cancelled_by: Optional[str] = None
    cancellation_time: Optional[datetime] = None
    inventory_released: bool = False

    @classmethod
    def new(
        cls,
        order_number: str,
        customer_id: str,
        producer_id: str,
        items: List[LineItem],
        delivery_address: Address,
        payment_method: PaymentMethod,
        created_at: datetime,
        delivery_fee=0,
        tax=0,
        **extra,
    ) -> Order:
        order = cls(
            id=uuid.uuid4().hex,
            order_number=order_number,
            customer_id=customer_id,
            producer_id=producer_id,
            items=list(items),
            delivery_address=delivery_address,
            payment_method=payment_method,
            created_at=created_at,
            **extra,
        )
        order.recompute_totals(delivery_fee=delivery_fee, tax=tax)
        order.status_history.append(
            StatusChange(status=OrderStatus.PENDING, actor_id=customer_id, timestamp=created_at, note="Order placed")
        )
        return order

    def recompute_totals(self, delivery_fee=None, tax=None) -> None:
        """The only writer of subtotal / final_amount."""
        if delivery_fee is not None:
            self.delivery_fee = money(delivery_fee)
        if tax is not None:
            self.tax = money(tax)
        self.subtotal = money(sum((item.total for item in self.items), Decimal("0")))
        self.final_amount = money(self.subtotal + self.delivery_fee + self.tax)

    def record_status(self, status: OrderStatus, actor_id: Optional[str], at: datetime, note: str = "") -> None:
        self.order_status = status
        self.status_history.append(StatusChange(status=status, actor_id=actor_id, timestamp=at, note=note))

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_STATUSES

    @property
    def has_committed_partner(self) -> bool:
        return self.delivery_partner_status == DeliveryPartnerStatus.ACCEPTED

    @property
    def is_payment_cleared(self) -> bool:
        """COD orders settle at the door; everything else must be paid before dispatch."""
        return self.payment_method == PaymentMethod.COD or self.payment_status == OrderPaymentStatus.PAID

    @property
    def is_dispatchable(self) -> bool:
        return (
            self.order_status in ASSIGNABLE_STATUSES
            and not self.has_committed_partner
            and self.is_payment_cleared
        )

    @property
    def delivery_coordinates(self) -> Optional[LatLon]:
        return self.delivery_address.coordinates

    @property
    def delivered_on_time(self) -> Optional[bool]:
        """Lenient order-level check: delivered within the estimate plus ON_TIME_GRACE."""
        if self.actual_delivery_time is None or self.estimated_delivery_time is None:
            return None
        return self.actual_delivery_time <= self.estimated_delivery_time + ON_TIME_GRACE

    def is_party(self, actor: Actor) -> bool:
        if actor.role == Role.ADMIN:
            return True
        return actor.id in (self.customer_id, self.producer_id, self.delivery_partner_id)
