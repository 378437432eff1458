"""
Purpose: Domain models for physical fulfilment.
What it does:
- Delivery: one order carried by one partner (partner is fixed at creation)
- RoutePoint: append-only live trace
- DeliveryStatusUpdate, DeliveryConfirmation, DeliveryPerformance

Defines enums/constants:
- DeliveryStatus = assigned | accepted | picked_up | in_transit | delivered | cancelled

Rule: No store access. Models only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

LatLon = Tuple[float, float]


class DeliveryStatus(str, Enum):
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Forward order of the non-cancelled statuses.
PROGRESSION = (
    DeliveryStatus.ASSIGNED,
    DeliveryStatus.ACCEPTED,
    DeliveryStatus.PICKED_UP,
    DeliveryStatus.IN_TRANSIT,
    DeliveryStatus.DELIVERED,
)

TERMINAL_DELIVERY_STATUSES = frozenset({DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED})


@dataclass(frozen=True)
class RoutePoint:
    latitude: float
    longitude: float
    timestamp: datetime
    speed: float = 0.0


@dataclass(frozen=True)
class DeliveryStatusUpdate:
    status: DeliveryStatus
    timestamp: datetime
    location: Optional[LatLon] = None
    note: str = ""


@dataclass(frozen=True)
class DeliveryConfirmation:
    """
    References to proof-of-delivery artifacts (storage keys / URLs), never the artifacts.
    """
    customer_signature: Optional[str] = None
    customer_photo: Optional[str] = None
    customer_note: str = ""
    delivered_at: Optional[datetime] = None


@dataclass(frozen=True)
class DeliveryPerformance:
    # Strict: actual_duration <= estimated_duration, no grace.
    on_time_delivery: bool
    delivery_minutes: int


@dataclass
class Delivery:
    id: str
    order_id: str
    delivery_partner_id: str
    created_at: datetime
    pickup_location: Optional[LatLon] = None
    delivery_location: Optional[LatLon] = None
    status: DeliveryStatus = DeliveryStatus.ACCEPTED
    status_updates: List[DeliveryStatusUpdate] = field(default_factory=list)
    route: List[RoutePoint] = field(default_factory=list)

    pickup_time: Optional[datetime] = None
    delivery_time: Optional[datetime] = None
    # minutes
    estimated_duration: Optional[int] = None
    actual_duration: Optional[int] = None

    confirmation: Optional[DeliveryConfirmation] = None
    performance: Optional[DeliveryPerformance] = None

    @staticmethod
    def key_for(order_id: str, assignment_number: int) -> str:
        return f"{order_id}:{assignment_number}"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DELIVERY_STATUSES

    def record_status(self, status: DeliveryStatus, at: datetime, note: str = "", location: Optional[LatLon] = None) -> None:
        self.status = status
        self.status_updates.append(DeliveryStatusUpdate(status=status, timestamp=at, location=location, note=note))

    def is_behind(self, status: DeliveryStatus) -> bool:
        """True if `status` is a forward move from the current status."""
        if self.is_terminal:
            return False
        if status == DeliveryStatus.CANCELLED:
            return True
        return PROGRESSION.index(status) > PROGRESSION.index(self.status)
