from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from dispatch.services import build_marketplace
from notifications.publisher import InMemoryPublisher
from orders.inventory import Product
from orders.models import Actor, Address, OrderStatus, PaymentMethod, ProducerProfile, Role
from partners.models import DeliveryPartner
from payments.config import GatewaySettings
from payments.gateways.simulated import SimulatedGateway
from storage.memory import InMemoryStore

FARM = (10.79, 78.70)
CUSTOMER_HOME = (10.80, 78.71)


class FrozenClock:
    """Callable clock the services accept in place of utcnow."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def publisher():
    return InMemoryPublisher()


@pytest.fixture
def gateway():
    return SimulatedGateway("test-secret")


@pytest.fixture
def market(store, publisher, gateway, clock):
    market = build_marketplace(
        store,
        publisher=publisher,
        gateways={"simulated": gateway},
        gateway_settings=GatewaySettings(),
        clock=clock,
    )
    market.add_producer(ProducerProfile(id="farm-1", name="Cauvery Greens", location=FARM))
    market.add_producer(ProducerProfile(id="farm-2", name="Hill Orchards", location=(10.36, 77.98)))
    market.inventory.add_product(
        Product(id="tomatoes", name="Tomatoes", price=Decimal("40.00"), quantity=100, seller_id="farm-1")
    )
    market.inventory.add_product(
        Product(
            id="okra",
            name="Okra",
            price=Decimal("62.50"),
            quantity=20,
            seller_id="farm-1",
            min_order_quantity=2,
            max_order_quantity=10,
        )
    )
    market.inventory.add_product(
        Product(id="mangoes", name="Mangoes", price=Decimal("120.00"), quantity=30, seller_id="farm-2")
    )
    return market


@pytest.fixture
def partners(market):
    """Three online partners within 10 km of the farm, one far away, one offline."""
    registered = [
        DeliveryPartner.new("partner-near", 10.795, 78.705, name="Near"),
        DeliveryPartner.new("partner-mid", 10.82, 78.73, name="Mid"),
        DeliveryPartner.new("partner-edge", 10.86, 78.75, name="Edge"),
        DeliveryPartner.new("partner-far", 11.50, 79.50, name="Far"),
        DeliveryPartner.new("partner-offline", 10.791, 78.701, is_online=False, is_available=False),
    ]
    return [market.partners.register(partner) for partner in registered]


@pytest.fixture
def customer():
    return Actor("customer-1", Role.CUSTOMER)


@pytest.fixture
def producer():
    return Actor("farm-1", Role.PRODUCER)


@pytest.fixture
def rider():
    return Actor("partner-near", Role.DELIVERY_PARTNER)


@pytest.fixture
def address():
    return Address("12 Anna Salai", "Tiruchirappalli", "Tamil Nadu", "620001", CUSTOMER_HOME)


@pytest.fixture
def place_order(market, customer, address):
    def place(items=(("tomatoes", 5),), method=PaymentMethod.COD, actor=None):
        return market.place_order(actor or customer, list(items), address, method)
    return place


@pytest.fixture
def assigned_order(market, partners, place_order, rider):
    """A COD order accepted by partner-near."""
    order, _ = place_order()
    market.dispatcher.accept_order(order.id, rider)
    return market.orders.get(order.id)


@pytest.fixture
def in_transit_order(market, assigned_order, producer, rider):
    for status in (OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP):
        market.orders.transition(assigned_order.id, producer, status)
    market.orders.transition(assigned_order.id, rider, OrderStatus.PICKED_UP)
    return market.orders.transition(assigned_order.id, rider, OrderStatus.IN_TRANSIT)
