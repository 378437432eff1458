from datetime import datetime, timezone

import pytest

from common.errors import AlreadyAssigned, AuthorizationError, IllegalTransition, NotAssignedAgent
from dispatch.state_machines.order_state import (
    TRANSITIONS,
    allowed_targets,
    apply_assignment,
    apply_release,
    apply_transition,
    check_transition,
)
from orders.models import (
    Actor,
    Address,
    DeliveryPartnerStatus,
    LineItem,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    Role,
)

NOW = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)

CUSTOMER = Actor("customer-1", Role.CUSTOMER)
PRODUCER = Actor("farm-1", Role.PRODUCER)
RIDER = Actor("rider-1", Role.DELIVERY_PARTNER)
OTHER_RIDER = Actor("rider-2", Role.DELIVERY_PARTNER)
ADMIN = Actor("admin", Role.ADMIN)


def make_order(status=OrderStatus.PENDING, method=PaymentMethod.COD, **extra) -> Order:
    order = Order.new(
        order_number="ORD-20260314-00001",
        customer_id=CUSTOMER.id,
        producer_id=PRODUCER.id,
        items=[LineItem.new("tomatoes", 2, "40")],
        delivery_address=Address("1 Main St", "Trichy", "TN", "620001", (10.80, 78.71)),
        payment_method=method,
        created_at=NOW,
        **extra,
    )
    order.order_status = status
    return order


def test_every_edge_has_exactly_one_role():
    for (source, target), role in TRANSITIONS.items():
        assert source != target
        assert isinstance(role, Role)


def test_allowed_targets_per_role():
    assert allowed_targets(OrderStatus.PENDING, Role.PRODUCER) == [OrderStatus.CONFIRMED]
    assert allowed_targets(OrderStatus.PENDING, Role.CUSTOMER) == [OrderStatus.CANCELLED]
    assert allowed_targets(OrderStatus.IN_TRANSIT, Role.DELIVERY_PARTNER) == [OrderStatus.DELIVERED]
    assert allowed_targets(OrderStatus.DELIVERED, Role.ADMIN) == []


def test_producer_walks_the_preparation_edges():
    order = make_order()
    for target in (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP):
        apply_transition(order, PRODUCER, target, NOW)

    assert order.order_status == OrderStatus.READY_FOR_PICKUP
    assert [change.status for change in order.status_history] == [
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY_FOR_PICKUP,
    ]


@pytest.mark.parametrize(
    "status, actor, target",
    [
        (OrderStatus.PENDING, CUSTOMER, OrderStatus.CONFIRMED),
        (OrderStatus.PENDING, PRODUCER, OrderStatus.PREPARING),
        (OrderStatus.PREPARING, CUSTOMER, OrderStatus.CANCELLED),
        (OrderStatus.DELIVERED, ADMIN, OrderStatus.CANCELLED),
        (OrderStatus.CANCELLED, PRODUCER, OrderStatus.CONFIRMED),
    ],
)
def test_illegal_edges_are_rejected_without_mutation(status, actor, target):
    order = make_order(status)
    history_before = list(order.status_history)

    with pytest.raises(IllegalTransition) as excinfo:
        apply_transition(order, actor, target, NOW)

    assert order.order_status == status
    assert order.status_history == history_before
    assert excinfo.value.current == status.value
    assert excinfo.value.target == target.value
    assert excinfo.value.role == actor.role.value


def test_wrong_producer_is_not_authorized():
    order = make_order()
    with pytest.raises(AuthorizationError):
        check_transition(order, Actor("farm-2", Role.PRODUCER), OrderStatus.CONFIRMED)


def test_only_the_assigned_partner_moves_the_order():
    order = make_order(OrderStatus.READY_FOR_PICKUP)
    apply_assignment(order, RIDER, NOW)

    with pytest.raises(NotAssignedAgent):
        check_transition(order, OTHER_RIDER, OrderStatus.PICKED_UP)

    apply_transition(order, RIDER, OrderStatus.PICKED_UP, NOW)
    assert order.order_status == OrderStatus.PICKED_UP


def test_delivered_stamps_actual_delivery_time():
    order = make_order(OrderStatus.IN_TRANSIT)
    order.delivery_partner_id = RIDER.id
    order.delivery_partner_status = DeliveryPartnerStatus.ACCEPTED

    apply_transition(order, RIDER, OrderStatus.DELIVERED, NOW)

    assert order.actual_delivery_time == NOW


def test_assignment_fills_the_slot_once():
    order = make_order()
    apply_assignment(order, RIDER, NOW)

    assert order.delivery_partner_id == RIDER.id
    assert order.delivery_partner_status == DeliveryPartnerStatus.ACCEPTED
    assert order.assignment_count == 1

    with pytest.raises(AlreadyAssigned):
        apply_assignment(order, OTHER_RIDER, NOW)
    assert order.delivery_partner_id == RIDER.id


def test_unpaid_prepaid_order_cannot_be_assigned():
    order = make_order(method=PaymentMethod.UPI)
    with pytest.raises(IllegalTransition):
        apply_assignment(order, RIDER, NOW)

    order.payment_status = OrderPaymentStatus.PAID
    apply_assignment(order, RIDER, NOW)
    assert order.has_committed_partner


def test_picked_up_order_is_no_longer_assignable():
    order = make_order(OrderStatus.PICKED_UP)
    with pytest.raises(IllegalTransition):
        apply_assignment(order, RIDER, NOW)


def test_customer_cannot_accept():
    with pytest.raises(AuthorizationError):
        apply_assignment(make_order(), CUSTOMER, NOW)


def test_release_reopens_the_slot():
    order = make_order(OrderStatus.CONFIRMED)
    apply_assignment(order, RIDER, NOW)

    apply_release(order, RIDER)

    assert order.delivery_partner_id is None
    assert order.delivery_partner_status == DeliveryPartnerStatus.PENDING
    assert order.is_dispatchable
    # the counter keeps growing so the next delivery gets a fresh key
    assert order.assignment_count == 1


def test_release_by_someone_else_is_rejected():
    order = make_order()
    apply_assignment(order, RIDER, NOW)
    with pytest.raises(NotAssignedAgent):
        apply_release(order, OTHER_RIDER)
