from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from dispatch.services import build_marketplace
from notifications.publisher import InMemoryPublisher
from orders.inventory import Product
from orders.models import ProducerProfile
from payments.config import GatewaySettings
from payments.gateways.simulated import SimulatedGateway

FARM = (10.79, 78.70)


@pytest.fixture
def simulated():
    return SimulatedGateway("api-secret")


@pytest.fixture
def users(db, django_user_model):
    def make(username, role):
        return django_user_model.objects.create_user(username=username, password="pw-12345", role=role)

    return {
        "customer": make("asha", "customer"),
        "producer": make("cauvery", "producer"),
        "rider": make("ravi", "delivery_partner"),
        "rider2": make("meena", "delivery_partner"),
        "admin": make("ops", "admin"),
    }


@pytest.fixture
def api_market(db, monkeypatch, users, simulated):
    """Marketplace over the Django document store, wired into the views."""
    from logistics import views
    from logistics.store import DjangoStore

    market = build_marketplace(
        DjangoStore(),
        publisher=InMemoryPublisher(),
        gateways={"simulated": simulated},
        gateway_settings=GatewaySettings(),
    )
    producer_id = str(users["producer"].pk)
    market.add_producer(ProducerProfile(id=producer_id, name="Cauvery Greens", location=FARM))
    market.inventory.add_product(
        Product(id="tomatoes", name="Tomatoes", price=Decimal("40.00"), quantity=50, seller_id=producer_id)
    )
    monkeypatch.setattr(views, "get_marketplace", lambda: market)
    return market


@pytest.fixture
def client_for(users):
    def make(name):
        client = APIClient()
        if name is not None:
            client.force_authenticate(users[name])
        return client
    return make
