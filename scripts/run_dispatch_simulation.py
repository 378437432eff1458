"""
End-to-end marketplace simulation on the in-memory store.

Scenario:
1. A farm near Trichy lists produce; delivery partners come online around it
2. A customer places a cash-on-delivery order -> offers are pushed to nearby partners
3. Every offered partner taps "accept" at the same moment -> exactly one wins
4. Producer prepares, partner picks up, reports its route and delivers
5. Partner confirms the cash, customer rates the farm
6. A second order is paid by UPI through the simulated gateway and its signed callback

Run from the repository root:
    python -m scripts.run_dispatch_simulation
"""

import random
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from common.errors import AlreadyAssigned
from deliveries.models import DeliveryConfirmation
from dispatch.services import build_marketplace
from notifications.events import EventType
from notifications.publisher import InMemoryPublisher
from orders.inventory import Product
from orders.models import Actor, Address, OrderStatus, PaymentMethod, ProducerProfile, Role
from partners.models import DeliveryPartner
from payments.config import GatewaySettings
from payments.gateways.simulated import SimulatedGateway
from storage.memory import InMemoryStore

FARM_LOCATION = (10.79, 78.70)
CUSTOMER_LOCATION = (10.80, 78.71)


def scatter(center, spread_deg, rng):
    return (
        center[0] + (rng.random() - 0.5) * spread_deg,
        center[1] + (rng.random() - 0.5) * spread_deg,
    )


def setup(market, rng, partner_count=8):
    market.add_producer(ProducerProfile(id="farm-1", name="Cauvery Greens", location=FARM_LOCATION))
    market.inventory.add_product(
        Product(id="tomatoes", name="Tomatoes", price=Decimal("40.00"), quantity=200, seller_id="farm-1")
    )
    market.inventory.add_product(
        Product(id="okra", name="Okra", price=Decimal("60.00"), quantity=50, seller_id="farm-1", max_order_quantity=10)
    )
    for i in range(partner_count):
        lat, lon = scatter(FARM_LOCATION, 0.12, rng)
        market.partners.register(DeliveryPartner.new(f"partner-{i}", lat, lon, name=f"Rider {i}", vehicle_type="bike"))


def race_to_accept(market, order_id, partner_ids):
    barrier = threading.Barrier(len(partner_ids))

    def attempt(partner_id):
        barrier.wait()
        try:
            market.dispatcher.accept_order(order_id, Actor(partner_id, Role.DELIVERY_PARTNER))
            return partner_id, "won"
        except AlreadyAssigned:
            return partner_id, "already assigned"

    with ThreadPoolExecutor(max_workers=len(partner_ids)) as pool:
        return list(pool.map(attempt, partner_ids))


def run_simulation(seed=7):
    print("=== STARTING END-TO-END MARKETPLACE SIMULATION ===")
    rng = random.Random(seed)
    publisher = InMemoryPublisher()
    gateway = SimulatedGateway("simulation-secret")
    market = build_marketplace(
        InMemoryStore(),
        publisher=publisher,
        gateways={"simulated": gateway},
        gateway_settings=GatewaySettings(),
    )
    setup(market, rng)

    customer = Actor("customer-1", Role.CUSTOMER)
    producer = Actor("farm-1", Role.PRODUCER)
    address = Address("12 Anna Salai", "Tiruchirappalli", "Tamil Nadu", "620001", CUSTOMER_LOCATION)

    # 1. COD order
    order, payment = market.place_order(
        customer, [("tomatoes", 5), ("okra", 2)], address, PaymentMethod.COD
    )
    offers = publisher.of_type(EventType.DELIVERY_OFFERED)
    print(f"Placed {order.order_number}: {order.final_amount} ({payment.status.value}), offered to {len(offers)} partners")

    # 2. Accept race
    offered = [event.target_actor_id for event in offers]
    results = race_to_accept(market, order.id, offered)
    winners = [partner_id for partner_id, outcome in results if outcome == "won"]
    print(f"Accept race: {len(winners)} winner ({winners[0] if winners else '-'}), "
          f"{len(results) - len(winners)} told already assigned")
    if not winners:
        print("No partner accepted; stopping.")
        return
    rider = Actor(winners[0], Role.DELIVERY_PARTNER)

    # 3. Fulfilment
    for status in (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP):
        market.orders.transition(order.id, producer, status)
    market.orders.transition(order.id, rider, OrderStatus.PICKED_UP)
    market.orders.transition(order.id, rider, OrderStatus.IN_TRANSIT)

    delivery = market.tracker.for_order(order.id)
    for step in range(1, 4):
        lat = FARM_LOCATION[0] + (CUSTOMER_LOCATION[0] - FARM_LOCATION[0]) * step / 3
        lon = FARM_LOCATION[1] + (CUSTOMER_LOCATION[1] - FARM_LOCATION[1]) * step / 3
        market.tracker.add_route_point(delivery.id, rider, lat, lon, speed=22.0)

    delivery = market.tracker.complete(
        delivery.id, rider, DeliveryConfirmation(customer_note="Left with security"), note="Handed over"
    )
    print(f"Delivery {delivery.id}: {delivery.status.value}, {len(delivery.route)} route points")

    # 4. Settlement and rating
    payment = market.ledger.confirm_cod(order.id, rider, order.final_amount)
    market.orders.rate(order.id, customer, 5, "Fresh and on time")
    order = market.orders.get(order.id)
    print(f"COD payment {payment.status.value}; order payment {order.payment_status.value}; "
          f"on time: {order.delivered_on_time}")

    # 5. UPI order through the simulated gateway
    upi_order, upi_payment = market.place_order(customer, [("tomatoes", 3)], address, PaymentMethod.UPI)
    print(f"Placed {upi_order.order_number} by UPI: payment {upi_payment.status.value}")
    callback = gateway.build_callback(upi_payment.correlation_id, success=True)
    result = market.webhooks.handle("simulated", callback, {})
    replay = market.webhooks.handle("simulated", callback, {})
    upi_order = market.orders.get(upi_order.id)
    print(f"Webhook matched={result.matched}, replay matched={replay.matched}; "
          f"order payment {upi_order.payment_status.value}")

    print("\nEvents published:")
    counts = {}
    for event in publisher.events:
        counts[event.type.value] = counts.get(event.type.value, 0) + 1
    for name in sorted(counts):
        print(f"  {name}: {counts[name]}")
    print(f"\nTomatoes left: {market.inventory.quantity('tomatoes')}, okra left: {market.inventory.quantity('okra')}")
    print("=== SIMULATION COMPLETE ===")


if __name__ == "__main__":
    run_simulation()
