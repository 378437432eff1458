"""
Purpose: The order lifecycle rules, in one table.
What it does:
- TRANSITIONS maps (from, to) -> the role allowed to take that edge.
- check_transition() is the single gate every status change goes through.
- check_assignment() / check_release() gate the delivery partner slot.

Pure functions over Order snapshots: no store, no events. The service layer
runs them inside the compare-and-set loop so they are re-checked after a lost race.
"""

from datetime import datetime
from typing import Dict, List, Tuple

from common.errors import AlreadyAssigned, AuthorizationError, IllegalTransition, NotAssignedAgent
from orders.models import (
    ASSIGNABLE_STATUSES,
    Actor,
    DeliveryPartnerStatus,
    Order,
    OrderStatus,
    Role,
)

TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], Role] = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED): Role.PRODUCER,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): Role.CUSTOMER,
    (OrderStatus.CONFIRMED, OrderStatus.PREPARING): Role.PRODUCER,
    (OrderStatus.CONFIRMED, OrderStatus.CANCELLED): Role.CUSTOMER,
    (OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP): Role.PRODUCER,
    (OrderStatus.READY_FOR_PICKUP, OrderStatus.PICKED_UP): Role.DELIVERY_PARTNER,
    (OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT): Role.DELIVERY_PARTNER,
    (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED): Role.DELIVERY_PARTNER,
}

# Order statuses the Delivery record follows.
MIRRORED_STATUSES = (
    OrderStatus.PICKED_UP,
    OrderStatus.IN_TRANSIT,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
)


def allowed_targets(current: OrderStatus, role: Role) -> List[OrderStatus]:
    return [target for (source, target), allowed in TRANSITIONS.items() if source == current and allowed == role]


def check_transition(order: Order, actor: Actor, target: OrderStatus) -> None:
    """
    Raises unless `actor` may move `order` to `target` right now.
    """
    edge = (order.order_status, target)
    if TRANSITIONS.get(edge) != actor.role:
        raise IllegalTransition(order.order_status, target, actor.role)

    if actor.role == Role.CUSTOMER and actor.id != order.customer_id:
        raise AuthorizationError(f"Order {order.order_number} does not belong to customer {actor.id}")

    if actor.role == Role.PRODUCER and actor.id != order.producer_id:
        raise AuthorizationError(f"Order {order.order_number} is not for producer {actor.id}")

    if actor.role == Role.DELIVERY_PARTNER and not is_assigned_partner(order, actor):
        raise NotAssignedAgent(f"Order {order.order_number} is not assigned to partner {actor.id}")


def apply_transition(order: Order, actor: Actor, target: OrderStatus, at: datetime, note: str = "") -> Order:
    check_transition(order, actor, target)
    order.record_status(target, actor.id, at, note)
    if target == OrderStatus.DELIVERED:
        order.actual_delivery_time = at
    return order


def is_assigned_partner(order: Order, actor: Actor) -> bool:
    return (
        order.delivery_partner_id == actor.id
        and order.delivery_partner_status == DeliveryPartnerStatus.ACCEPTED
    )


def check_assignment(order: Order, actor: Actor) -> None:
    """
    Precondition of the accept compare-and-set: the slot must still be open.
    """
    if actor.role != Role.DELIVERY_PARTNER:
        raise AuthorizationError("Only delivery partners can accept orders")

    if order.has_committed_partner:
        raise AlreadyAssigned(f"Order {order.order_number} is already assigned")

    if order.order_status not in ASSIGNABLE_STATUSES:
        raise IllegalTransition(
            order.order_status,
            "assigned",
            actor.role,
            message=f"Order {order.order_number} is {order.order_status.value} and can no longer be assigned",
        )

    if not order.is_payment_cleared:
        raise IllegalTransition(
            order.order_status,
            "assigned",
            actor.role,
            message=f"Order {order.order_number} is awaiting payment",
        )


def apply_assignment(order: Order, actor: Actor, at: datetime) -> Order:
    check_assignment(order, actor)
    order.delivery_partner_id = actor.id
    order.delivery_partner_status = DeliveryPartnerStatus.ACCEPTED
    order.delivery_partner_assigned_at = at
    order.delivery_partner_accepted_at = at
    order.assignment_count += 1
    return order


def check_release(order: Order, actor: Actor) -> None:
    """
    The assigned partner may hand the order back until they have picked it up.
    """
    if not is_assigned_partner(order, actor):
        raise NotAssignedAgent(f"Order {order.order_number} is not assigned to partner {actor.id}")

    if order.order_status not in ASSIGNABLE_STATUSES:
        raise IllegalTransition(
            order.order_status,
            "declined",
            actor.role,
            message=f"Order {order.order_number} is already {order.order_status.value}; it can no longer be declined",
        )


def apply_release(order: Order, actor: Actor) -> Order:
    check_release(order, actor)
    order.delivery_partner_id = None
    order.delivery_partner_status = DeliveryPartnerStatus.PENDING
    order.delivery_partner_assigned_at = None
    order.delivery_partner_accepted_at = None
    order.estimated_delivery_time = None
    return order
