"""
Purpose: Event vocabulary handed to the notification collaborator.
What it does:
Every event carries the order it is about, the actor it is addressed to and a
small JSON-friendly payload. Delivery is best-effort and at-most-once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class EventType(str, Enum):
    ORDER_CREATED = "order.created"
    ORDER_STATUS_CHANGED = "order.status_changed"
    DELIVERY_OFFERED = "delivery.offered"
    DELIVERY_ASSIGNED = "delivery.assigned"
    DELIVERY_TAKEN = "delivery.taken"
    DELIVERY_LOCATION_UPDATED = "delivery.location_updated"
    PAYMENT_COMPLETED = "payment.completed"
    PAYMENT_COD_CONFIRMED = "payment.cod_confirmed"


@dataclass(frozen=True)
class Event:
    type: EventType
    order_id: str
    target_actor_id: Optional[str]
    payload: Dict[str, Any] = field(default_factory=dict)

    def as_message(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "orderId": self.order_id,
            "targetActorId": self.target_actor_id,
            "payload": self.payload,
        }
