import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from common.errors import AlreadyAssigned, AuthorizationError, IllegalTransition, ValidationError
from deliveries.models import Delivery, DeliveryStatus
from notifications.events import EventType
from orders.models import Actor, DeliveryPartnerStatus, PaymentMethod, Role
from partners.models import DeliveryPartner

NEAR = Actor("partner-near", Role.DELIVERY_PARTNER)
MID = Actor("partner-mid", Role.DELIVERY_PARTNER)
EDGE = Actor("partner-edge", Role.DELIVERY_PARTNER)


def offered_to(publisher):
    return [event.target_actor_id for event in publisher.of_type(EventType.DELIVERY_OFFERED)]


def test_cod_order_is_offered_to_closest_partners(market, partners, place_order, publisher):
    order, _ = place_order()

    assert offered_to(publisher) == ["partner-near", "partner-mid", "partner-edge"]
    assert market.orders.get(order.id).offered_partner_ids == ["partner-near", "partner-mid", "partner-edge"]

    first = publisher.of_type(EventType.DELIVERY_OFFERED)[0]
    assert first.payload["orderNumber"] == order.order_number
    assert first.payload["distanceKm"] < 1.0


def test_offering_again_does_not_duplicate_recipients(market, partners, place_order):
    order, _ = place_order()
    market.dispatcher.offer_order(order.id)

    assert market.orders.get(order.id).offered_partner_ids == ["partner-near", "partner-mid", "partner-edge"]


def test_no_partners_nearby_sends_nothing(market, place_order, publisher):
    place_order()
    assert offered_to(publisher) == []


def test_concurrent_accepts_have_exactly_one_winner(market, place_order):
    racers = [f"racer-{i}" for i in range(8)]
    for index, partner_id in enumerate(racers):
        market.partners.register(DeliveryPartner.new(partner_id, 10.79 + index * 0.001, 78.70))
    order, _ = place_order()

    barrier = threading.Barrier(len(racers))

    def attempt(partner_id):
        barrier.wait()
        try:
            market.dispatcher.accept_order(order.id, Actor(partner_id, Role.DELIVERY_PARTNER))
            return "won"
        except AlreadyAssigned:
            return "lost"

    with ThreadPoolExecutor(max_workers=len(racers)) as pool:
        outcomes = list(pool.map(attempt, racers))

    assert outcomes.count("won") == 1
    assert outcomes.count("lost") == len(racers) - 1

    stored = market.orders.get(order.id)
    winner = racers[outcomes.index("won")]
    assert stored.delivery_partner_id == winner
    assert stored.assignment_count == 1
    assert market.tracker.for_order(order.id).delivery_partner_id == winner
    busy = [partner_id for partner_id in racers if not market.partners.get(partner_id).is_available]
    assert busy == [winner]


def test_accept_creates_delivery_and_notifies(market, partners, place_order, publisher, clock):
    order, _ = place_order()

    assignment = market.dispatcher.accept_order(order.id, NEAR)

    assert assignment.order.delivery_partner_status == DeliveryPartnerStatus.ACCEPTED
    assert assignment.order.estimated_delivery_time > clock()
    assert assignment.delivery.id == Delivery.key_for(order.id, 1)
    assert assignment.delivery.status == DeliveryStatus.ACCEPTED
    assert assignment.delivery.estimated_duration > 0

    assigned = publisher.of_type(EventType.DELIVERY_ASSIGNED)
    assert sorted(event.target_actor_id for event in assigned) == ["customer-1", "farm-1"]
    taken = publisher.of_type(EventType.DELIVERY_TAKEN)
    assert [event.target_actor_id for event in taken] == ["partner-mid", "partner-edge"]

    partner = market.partners.get(NEAR.id)
    assert partner.is_available is False
    assert partner.active_order_id == order.id


def test_accept_replay_by_winner_returns_same_delivery(market, partners, place_order):
    order, _ = place_order()
    first = market.dispatcher.accept_order(order.id, NEAR)
    again = market.dispatcher.accept_order(order.id, NEAR)

    assert again.delivery.id == first.delivery.id
    assert market.orders.get(order.id).assignment_count == 1


def test_late_accept_is_told_already_assigned(market, assigned_order):
    with pytest.raises(AlreadyAssigned):
        market.dispatcher.accept_order(assigned_order.id, MID)


def test_customer_cannot_accept(market, place_order, customer):
    order, _ = place_order()
    with pytest.raises(AuthorizationError):
        market.dispatcher.accept_order(order.id, customer)


def test_prepaid_order_waits_for_payment(market, partners, place_order, publisher):
    order, payment = place_order(method=PaymentMethod.UPI)

    assert offered_to(publisher) == []
    with pytest.raises(IllegalTransition, match="awaiting payment"):
        market.dispatcher.accept_order(order.id, NEAR)
    assert market.dispatcher.available_orders(MID) == []

    market.ledger.mark_completed(payment.correlation_id, "PAY_1")

    assert offered_to(publisher) == ["partner-near", "partner-mid", "partner-edge"]
    assert market.dispatcher.accept_order(order.id, NEAR).order.delivery_partner_id == NEAR.id


def test_decline_reopens_the_order(market, assigned_order, publisher, rider):
    offers_before = len(offered_to(publisher))

    assert market.dispatcher.decline_order(assigned_order.id, rider, "Flat tyre") is True

    order = market.orders.get(assigned_order.id)
    assert order.delivery_partner_id is None
    assert order.delivery_partner_status == DeliveryPartnerStatus.PENDING
    assert order.is_dispatchable

    first_delivery = market.tracker.get(Delivery.key_for(order.id, 1))
    assert first_delivery.status == DeliveryStatus.CANCELLED
    assert first_delivery.status_updates[-1].note == "Flat tyre"

    assert market.partners.get(rider.id).is_available is True
    assert len(offered_to(publisher)) > offers_before

    # the next winner gets a fresh delivery record
    second = market.dispatcher.accept_order(order.id, MID)
    assert second.delivery.id == Delivery.key_for(order.id, 2)
    assert second.delivery.delivery_partner_id == MID.id


def test_decline_by_someone_else_returns_false(market, assigned_order):
    assert market.dispatcher.decline_order(assigned_order.id, MID) is False
    assert market.orders.get(assigned_order.id).delivery_partner_id == "partner-near"


def test_decline_after_pickup_is_rejected(market, in_transit_order, rider):
    with pytest.raises(IllegalTransition):
        market.dispatcher.decline_order(in_transit_order.id, rider)


def test_available_orders_near_partner(market, partners, place_order):
    order, _ = place_order()

    matches = market.dispatcher.available_orders(MID)

    assert [match.item.id for match in matches] == [order.id]
    assert matches[0].distance_km < 5

    market.dispatcher.accept_order(order.id, NEAR)
    assert market.dispatcher.available_orders(MID) == []


def test_available_orders_respects_radius(market, partners, place_order):
    place_order()
    far = Actor("partner-far", Role.DELIVERY_PARTNER)
    assert market.dispatcher.available_orders(far) == []
    assert len(market.dispatcher.available_orders(far, radius_km=500)) == 1


def test_available_orders_needs_a_location(market):
    with pytest.raises(ValidationError):
        market.dispatcher.available_orders(Actor("ghost", Role.DELIVERY_PARTNER))
    with pytest.raises(AuthorizationError):
        market.dispatcher.available_orders(Actor("customer-1", Role.CUSTOMER), origin=(10.8, 78.7))


def test_coming_online_returns_nearby_orders(market, place_order):
    order, _ = place_order()
    newcomer = Actor("partner-new", Role.DELIVERY_PARTNER)

    partner, nearby_orders = market.dispatcher.update_partner_status(
        newcomer, is_online=True, latitude=10.80, longitude=78.71
    )

    assert partner.is_eligible
    assert partner.location == (10.80, 78.71)
    assert [match.item.id for match in nearby_orders] == [order.id]

    partner, nearby_orders = market.dispatcher.update_partner_status(newcomer, is_online=False)
    assert partner.is_available is False
    assert nearby_orders == []


def test_partner_with_an_order_stays_unavailable(market, assigned_order, rider):
    partner, nearby_orders = market.dispatcher.update_partner_status(rider, is_online=True, is_available=True)
    assert partner.is_online is True
    assert partner.is_available is False
    assert nearby_orders == []
