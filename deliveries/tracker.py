"""
Purpose: Delivery execution tracking.
What it does:
- open_delivery(): creates the Delivery when a partner wins the accept race.
  Keyed by (order, assignment number) so a replay returns the same record.
- follow_order(): projects the order's status onto its Delivery. Timestamps are
  taken from the order's status history, so re-running it (reconciliation)
  writes the same values. Never moves a Delivery backwards.
- DeliveryTracker: live route trace and completion with proof of delivery.

Rule: Delivery status is only ever changed by follow_order / cancel_delivery.
Completion goes through the order transition, never around it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from common.clock import utcnow
from common.errors import AuthorizationError, IllegalTransition, NotAssignedAgent, RecordNotFound, ValidationError
from dispatch.state_machines.partner_state import handle_partner_ping
from notifications.events import Event, EventType
from notifications.publisher import EventPublisher, safe_publish
from orders.models import Actor, Order, OrderStatus, Role
from partners.registry import PartnerRegistry
from storage.base import DELIVERIES, ORDERS, UNCHANGED, Store, Versioned

from .models import (
    Delivery,
    DeliveryConfirmation,
    DeliveryPerformance,
    DeliveryStatus,
    RoutePoint,
)

if TYPE_CHECKING:
    from orders.service import OrderService

logger = logging.getLogger(__name__)

ORDER_TO_DELIVERY = {
    OrderStatus.PICKED_UP: DeliveryStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT: DeliveryStatus.IN_TRANSIT,
    OrderStatus.DELIVERED: DeliveryStatus.DELIVERED,
    OrderStatus.CANCELLED: DeliveryStatus.CANCELLED,
}


def open_delivery(store: Store, order: Order, estimated_minutes: int, at: datetime) -> Delivery:
    key = Delivery.key_for(order.id, order.assignment_count)
    delivery = Delivery(
        id=key,
        order_id=order.id,
        delivery_partner_id=order.delivery_partner_id,
        created_at=at,
        pickup_location=order.pickup_location,
        delivery_location=order.delivery_coordinates,
        estimated_duration=estimated_minutes,
    )
    delivery.record_status(DeliveryStatus.ASSIGNED, at, "Assigned to partner")
    delivery.record_status(DeliveryStatus.ACCEPTED, at, "Accepted by partner")
    return store.insert_if_missing(DELIVERIES, key, delivery).record


def current_delivery(store: Store, order: Order) -> Optional[Versioned]:
    """The Delivery of the order's latest assignment, if any."""
    if order.assignment_count == 0:
        return None
    return store.get(DELIVERIES, Delivery.key_for(order.id, order.assignment_count))


def _transition_time(order: Order, status: OrderStatus) -> Optional[datetime]:
    for change in reversed(order.status_history):
        if change.status == status:
            return change.timestamp
    return None


def _duration_minutes(start: datetime, end: datetime) -> int:
    return int(round((end - start).total_seconds() / 60.0))


def follow_order(
    store: Store,
    order: Order,
    note: str = "",
    confirmation: Optional[DeliveryConfirmation] = None,
) -> Optional[Delivery]:
    """
    Mirror order.order_status into the current Delivery. Idempotent.
    """
    target = ORDER_TO_DELIVERY.get(order.order_status)
    if target is None:
        return None

    current = current_delivery(store, order)
    if current is None:
        if target != DeliveryStatus.CANCELLED:
            logger.warning("Order %s is %s but has no delivery record", order.order_number, order.order_status.value)
        return None

    at = _transition_time(order, order.order_status) or utcnow()
    picked_up_at = _transition_time(order, OrderStatus.PICKED_UP)

    def mutate(delivery: Delivery):
        if not delivery.is_behind(target):
            return UNCHANGED

        delivery.record_status(target, at, note)
        if target == DeliveryStatus.PICKED_UP:
            delivery.pickup_time = at
        elif target != DeliveryStatus.CANCELLED and delivery.pickup_time is None:
            # the picked_up mirror was missed; the order history still has the time
            delivery.pickup_time = picked_up_at
        if target == DeliveryStatus.DELIVERED:
            delivery.delivery_time = at
            if delivery.pickup_time is not None:
                delivery.actual_duration = _duration_minutes(delivery.pickup_time, at)
                if delivery.estimated_duration is not None:
                    delivery.performance = DeliveryPerformance(
                        on_time_delivery=delivery.actual_duration <= delivery.estimated_duration,
                        delivery_minutes=delivery.actual_duration,
                    )
            if confirmation is not None:
                delivery.confirmation = replace(confirmation, delivered_at=confirmation.delivered_at or at)
        return delivery

    return store.update(DELIVERIES, current.record.id, mutate).record


def cancel_delivery(store: Store, delivery_id: str, at: datetime, note: str = "") -> Optional[Delivery]:
    """Used when the partner declines; the order itself stays open."""
    if store.get(DELIVERIES, delivery_id) is None:
        return None

    def mutate(delivery: Delivery):
        if delivery.is_terminal:
            return UNCHANGED
        delivery.record_status(DeliveryStatus.CANCELLED, at, note)
        return delivery

    return store.update(DELIVERIES, delivery_id, mutate).record


def _check_coordinate(name: str, value, low: float, high: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationError(f"{name} must be a number")
    if not (low <= value <= high):
        raise ValidationError(f"{name} must be between {low} and {high}")
    return float(value)


class DeliveryTracker:
    """
    Owns the Delivery record once assignment is final.
    """

    def __init__(
        self,
        store: Store,
        orders: "OrderService",
        partners: PartnerRegistry,
        publisher: Optional[EventPublisher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.orders = orders
        self.partners = partners
        self.publisher = publisher
        self.clock = clock

    def get(self, delivery_id: str) -> Delivery:
        return self.store.require(DELIVERIES, delivery_id).record

    def for_order(self, order_id: str) -> Optional[Delivery]:
        order = self.store.require(ORDERS, order_id).record
        current = current_delivery(self.store, order)
        return current.record if current else None

    def _check_partner(self, delivery: Delivery, actor: Actor) -> None:
        if actor.role != Role.DELIVERY_PARTNER:
            raise AuthorizationError("Only the delivery partner can update a delivery")
        if actor.id != delivery.delivery_partner_id:
            raise NotAssignedAgent(f"Delivery {delivery.id} belongs to another partner")

    def add_route_point(self, delivery_id: str, actor: Actor, latitude, longitude, speed=0.0) -> Delivery:
        lat = _check_coordinate("latitude", latitude, -90.0, 90.0)
        lon = _check_coordinate("longitude", longitude, -180.0, 180.0)
        speed = _check_coordinate("speed", speed, 0.0, math.inf)

        delivery = self.get(delivery_id)
        self._check_partner(delivery, actor)

        now = self.clock()
        point = RoutePoint(latitude=lat, longitude=lon, timestamp=now, speed=speed)

        def append(record: Delivery):
            record.route.append(point)
            return record

        updated = self.store.update(DELIVERIES, delivery_id, append).record
        self.partners.apply(actor.id, lambda partner: handle_partner_ping(partner, lat, lon, now))

        order = self.store.require(ORDERS, updated.order_id).record
        safe_publish(self.publisher, [
            Event(
                type=EventType.DELIVERY_LOCATION_UPDATED,
                order_id=order.id,
                target_actor_id=order.customer_id,
                payload={
                    "deliveryId": updated.id,
                    "latitude": lat,
                    "longitude": lon,
                    "speed": speed,
                    "timestamp": now.isoformat(),
                },
            )
        ])
        return updated

    def complete(
        self,
        delivery_id: str,
        actor: Actor,
        confirmation: Optional[DeliveryConfirmation] = None,
        note: str = "",
    ) -> Delivery:
        delivery = self.get(delivery_id)
        self._check_partner(delivery, actor)
        if delivery.status != DeliveryStatus.IN_TRANSIT:
            raise IllegalTransition(delivery.status, DeliveryStatus.DELIVERED, actor.role)

        self.orders.transition(
            delivery.order_id,
            actor,
            OrderStatus.DELIVERED,
            note=note or "Delivered",
            confirmation=confirmation or DeliveryConfirmation(),
        )
        completed = self.get(delivery_id)
        logger.info(
            "Delivery %s completed in %s min (estimated %s)",
            completed.id, completed.actual_duration, completed.estimated_duration,
        )
        return completed
