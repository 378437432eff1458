"""
Purpose: Orchestrator / decision pipeline (the "glue").
What it does:
- Push: when an order becomes dispatchable, finds online + available partners
  around the pickup point and sends each an offer.
- Pull: answers a partner's "orders near me" query.
- Accept: race-free single assignment through one compare-and-set on the order.
- Decline: the assigned partner hands the order back to the pool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from common.clock import utcnow
from common.errors import AuthorizationError, RecordNotFound, ValidationError
from deliveries.models import Delivery
from deliveries.tracker import cancel_delivery, current_delivery, open_delivery
from notifications.events import Event, EventType
from notifications.publisher import EventPublisher, safe_publish
from orders.models import ASSIGNABLE_STATUSES, Actor, Order, Role
from partners.models import DeliveryPartner
from partners.policy import DispatchPolicy, default_dispatch_policy
from partners.registry import PartnerRegistry
from partners.selection import find_nearby_partners
from routing.eta_service import EtaEstimator
from routing.geofence import NearbyMatch, nearby
from storage.base import ORDERS, UNCHANGED, Store

from .state_machines.order_state import apply_assignment, apply_release, check_assignment, is_assigned_partner
from .state_machines.partner_state import (
    handle_partner_acceptance,
    handle_partner_availability,
    handle_partner_ping,
    handle_partner_release,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Assignment:
    order: Order
    delivery: Delivery


class Dispatcher:
    """
    Coordinates handing an Order to exactly one DeliveryPartner.
    """
    def __init__(
        self,
        store: Store,
        partners: PartnerRegistry,
        publisher: Optional[EventPublisher] = None,
        policy: Optional[DispatchPolicy] = None,
        eta: Optional[EtaEstimator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.partners = partners
        self.publisher = publisher
        self.policy = policy or default_dispatch_policy()
        self.eta = eta or EtaEstimator(
            average_speed_kmh=self.policy.average_speed_kmh,
            handling_minutes=self.policy.handling_minutes,
            default_minutes=self.policy.default_estimated_minutes,
        )
        self.clock = clock

    # ----------------
    # Push
    # ----------------
    def offer_order(self, order_id: str) -> List[NearbyMatch[DeliveryPartner]]:
        """
        Broadcast an offer to the closest eligible partners.
        Safe to call repeatedly; an order that is not dispatchable is skipped.
        """
        order = self.store.require(ORDERS, order_id).record
        if not order.is_dispatchable:
            logger.info("Order %s is not dispatchable yet; no offers sent", order.order_number)
            return []

        origin = order.pickup_location or order.delivery_coordinates
        if origin is None:
            logger.warning("Order %s has no pickup or delivery coordinates; cannot offer", order.order_number)
            return []

        matches = find_nearby_partners(origin, self.partners.eligible(), self.policy)
        if not matches:
            logger.info("No partners within %.1f km of order %s", self.policy.offer_radius_km, order.order_number)
            return []

        # 1. Remember who saw the offer so they can be told when it is taken
        offered_ids = [match.item.id for match in matches]

        def record_offers(record: Order):
            new_ids = [partner_id for partner_id in offered_ids if partner_id not in record.offered_partner_ids]
            if not new_ids:
                return UNCHANGED
            record.offered_partner_ids = record.offered_partner_ids + new_ids
            return record

        self.store.update(ORDERS, order.id, record_offers)

        # 2. Fire the offers
        safe_publish(self.publisher, [
            Event(
                type=EventType.DELIVERY_OFFERED,
                order_id=order.id,
                target_actor_id=match.item.id,
                payload={
                    "orderNumber": order.order_number,
                    "distanceKm": round(match.distance_km, 2),
                    "orderValue": str(order.final_amount),
                    "items": len(order.items),
                    "urgency": order.priority,
                    "deliveryAddress": f"{order.delivery_address.street}, {order.delivery_address.city}",
                },
            )
            for match in matches
        ])
        logger.info("Offered order %s to %d partners", order.order_number, len(matches))
        return matches

    # ----------------
    # Pull
    # ----------------
    def available_orders(
        self,
        actor: Actor,
        origin: Optional[Tuple[float, float]] = None,
        radius_km: Optional[float] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[NearbyMatch[Order]]:
        """
        Orders without a committed partner near the partner (or near `origin`), closest first.
        """
        if actor.role != Role.DELIVERY_PARTNER:
            raise AuthorizationError("Only delivery partners can browse available orders")

        if origin is None:
            partner = self.partners.get(actor.id)
            origin = partner.location if partner else None
        if origin is None:
            raise ValidationError("A location is required to find nearby orders")

        radius_km = self.policy.pull_radius_km if radius_km is None else radius_km
        open_orders = [
            entry.record
            for entry in self.store.find(
                ORDERS,
                order_status__in=[status.value for status in ASSIGNABLE_STATUSES],
                delivery_partner_id=None,
            )
        ]
        dispatchable = [order for order in open_orders if order.is_dispatchable]

        matches = nearby(origin, dispatchable, radius_km, location=lambda order: order.delivery_coordinates)
        return matches[offset:offset + limit]

    # ----------------
    # Accept / decline
    # ----------------
    def accept_order(self, order_id: str, actor: Actor) -> Assignment:
        """
        Race Condition Resolver: exactly one of any number of concurrent accepts wins.
        The winner gets the Delivery; everyone else gets AlreadyAssigned.
        """
        if actor.role != Role.DELIVERY_PARTNER:
            raise AuthorizationError("Only delivery partners can accept orders")

        # 1. Cheap early exit before any routing call
        snapshot = self.store.require(ORDERS, order_id).record
        if is_assigned_partner(snapshot, actor):
            return self.ensure_delivery(snapshot)
        check_assignment(snapshot, actor)

        minutes = self.eta.estimate_minutes(snapshot.pickup_location, snapshot.delivery_coordinates)
        now = self.clock()
        repeat = False

        # 2. The compare-and-set. The precondition is re-checked on every retry,
        #    so a partner who lost the race sees AlreadyAssigned here.
        def claim(order: Order):
            nonlocal repeat
            repeat = is_assigned_partner(order, actor)
            if repeat:
                return UNCHANGED
            apply_assignment(order, actor, now)
            order.estimated_delivery_time = now + timedelta(minutes=minutes)
            return order

        won = self.store.update(ORDERS, order_id, claim).record
        if repeat:
            return self.ensure_delivery(won)

        # 3. Follow-up writes; each is idempotent so a crash here is repaired by reconciliation
        delivery = open_delivery(self.store, won, minutes, now)
        self.partners.apply(actor.id, lambda partner: handle_partner_acceptance(partner, won.id))

        logger.info("Order %s assigned to partner %s", won.order_number, actor.id)

        # 4. Tell the parties, and retract the offer from everyone else
        payload = {
            "orderNumber": won.order_number,
            "deliveryId": delivery.id,
            "deliveryPartnerId": actor.id,
            "estimatedMinutes": minutes,
        }
        events = [
            Event(EventType.DELIVERY_ASSIGNED, won.id, won.customer_id, payload),
            Event(EventType.DELIVERY_ASSIGNED, won.id, won.producer_id, payload),
        ]
        events.extend(
            Event(EventType.DELIVERY_TAKEN, won.id, partner_id, {"orderNumber": won.order_number})
            for partner_id in won.offered_partner_ids
            if partner_id != actor.id
        )
        safe_publish(self.publisher, events)

        return Assignment(order=won, delivery=delivery)

    def ensure_delivery(self, order: Order) -> Assignment:
        """The assignment for an order that already has a committed partner."""
        current = current_delivery(self.store, order)
        if current is not None:
            return Assignment(order=order, delivery=current.record)
        # The assignment landed but the delivery write did not; create it now.
        minutes = self.eta.estimate_minutes(order.pickup_location, order.delivery_coordinates)
        delivery = open_delivery(self.store, order, minutes, order.delivery_partner_accepted_at or self.clock())
        return Assignment(order=order, delivery=delivery)

    def decline_order(self, order_id: str, actor: Actor, reason: str = "") -> bool:
        """
        The assigned partner gives the order back before pickup. The order is re-opened, not cancelled.
        Returns False when the partner held no assignment on this order.
        """
        if actor.role != Role.DELIVERY_PARTNER:
            raise AuthorizationError("Only delivery partners can decline orders")

        order = self.store.require(ORDERS, order_id).record
        if order.delivery_partner_id != actor.id:
            logger.info("Partner %s declined order %s without holding it", actor.id, order.order_number)
            return False

        released_assignment = None

        def release(record: Order):
            nonlocal released_assignment
            released_assignment = None
            if record.delivery_partner_id != actor.id:
                return UNCHANGED
            apply_release(record, actor)
            released_assignment = record.assignment_count
            return record

        self.store.update(ORDERS, order_id, release)
        if released_assignment is None:
            return False

        now = self.clock()
        cancel_delivery(
            self.store,
            Delivery.key_for(order_id, released_assignment),
            now,
            note=reason or "Declined by partner",
        )
        self.partners.apply(actor.id, lambda partner: handle_partner_release(partner, order_id))
        logger.info("Partner %s declined order %s; re-offering", actor.id, order.order_number)

        self.offer_order(order_id)
        return True

    # ----------------
    # Partner presence
    # ----------------
    def update_partner_status(
        self,
        actor: Actor,
        is_online: bool,
        is_available: Optional[bool] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> Tuple[DeliveryPartner, List[NearbyMatch[Order]]]:
        """
        Partner toggles availability and/or reports a position.
        Coming online returns the closest open orders so the app can show them at once.
        """
        if actor.role != Role.DELIVERY_PARTNER:
            raise AuthorizationError("Only delivery partners have availability")

        now = self.clock()
        if self.partners.get(actor.id) is None:
            self.partners.register(DeliveryPartner(id=actor.id, last_ping_at=now))

        def change(partner: DeliveryPartner) -> DeliveryPartner:
            partner = handle_partner_availability(partner, is_online, is_available)
            if latitude is not None and longitude is not None:
                partner = handle_partner_ping(partner, latitude, longitude, now)
            return partner

        partner = self.partners.apply(actor.id, change)
        if partner is None:
            raise RecordNotFound(f"Partner {actor.id} not found")

        nearby_orders: List[NearbyMatch[Order]] = []
        if partner.is_eligible and partner.location is not None:
            nearby_orders = self.available_orders(actor, limit=self.policy.nearby_orders_on_online)
        return partner, nearby_orders
