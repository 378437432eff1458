from dispatch.services import build_marketplace
from notifications.events import EventType
from notifications.publisher import InMemoryPublisher
from orders.models import Actor, Address, PaymentMethod, Role
from payments.config import GatewaySettings
from scripts.generate_mock_catalog import generate_mock_catalog, load_catalog, save_catalog
from storage.memory import InMemoryStore


def test_catalog_shape_and_reproducibility():
    farms, products, partners = generate_mock_catalog(num_farms=5, num_partners=12, seed=3)
    again = generate_mock_catalog(num_farms=5, num_partners=12, seed=3)

    assert len(farms) == 5
    assert len(partners) == 12
    assert set(products["farm_id"]) <= set(farms["farm_id"])
    assert products["product_id"].is_unique
    assert (products["quantity"] >= 10).all()
    assert (abs(farms["lat"] - 10.79) <= 0.051).all()
    assert products.equals(again[1])


def test_save_catalog_writes_csv(tmp_path):
    paths = save_catalog(*generate_mock_catalog(num_farms=2, num_partners=3, seed=1), output_dir=str(tmp_path))

    assert sorted(paths) == ["farms", "partners", "products"]
    assert (tmp_path / "mock_partners.csv").read_text().startswith("partner_id,lat,lon")


def test_loaded_catalog_can_take_an_order():
    publisher = InMemoryPublisher()
    market = build_marketplace(InMemoryStore(), publisher=publisher, gateways={}, gateway_settings=GatewaySettings())
    farms, products, partners = generate_mock_catalog(num_farms=4, num_partners=40, seed=11)

    counts = load_catalog(market, farms, products, partners)

    assert counts == {"farms": 4, "products": len(products), "partners": 40}
    assert len(market.partners.eligible()) == int(partners["is_online"].sum())

    listing = products.iloc[0]
    address = Address("3 Big Bazaar Street", "Tiruchirappalli", "Tamil Nadu", "620008", (10.80, 78.69))
    order, payment = market.place_order(
        Actor("customer-1", Role.CUSTOMER), [(listing["product_id"], 1)], address, PaymentMethod.COD
    )

    assert order.producer_id == listing["farm_id"]
    assert market.inventory.quantity(listing["product_id"]) == int(listing["quantity"]) - 1
    assert publisher.of_type(EventType.DELIVERY_OFFERED)
