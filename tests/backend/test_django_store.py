import pytest

from common.errors import DuplicateRecord
from partners.models import DeliveryPartner
from storage.base import PARTNERS, UNCHANGED

pytestmark = pytest.mark.django_db


@pytest.fixture
def store():
    from logistics.store import DjangoStore
    return DjangoStore()


def test_insert_and_duplicate(store):
    created = store.insert(PARTNERS, "p1", DeliveryPartner.new("p1", 10.79, 78.70, name="Ravi"))

    assert created.version == 1
    assert created.record.location == (10.79, 78.70)
    with pytest.raises(DuplicateRecord):
        store.insert(PARTNERS, "p1", DeliveryPartner.new("p1"))


def test_compare_and_set_checks_version(store):
    store.insert(PARTNERS, "p1", DeliveryPartner.new("p1"))
    partner = store.get(PARTNERS, "p1").record

    assert store.compare_and_set(PARTNERS, "p1", 1, DeliveryPartner.new("p1", name="first")) is True
    assert store.compare_and_set(PARTNERS, "p1", 1, DeliveryPartner.new("p1", name="stale")) is False

    current = store.get(PARTNERS, "p1")
    assert current.version == 2
    assert current.record.name == "first"
    assert partner.name == ""


def test_update_and_unchanged(store):
    from dataclasses import replace

    store.insert(PARTNERS, "p1", DeliveryPartner.new("p1"))
    store.update(PARTNERS, "p1", lambda partner: replace(partner, is_available=False, active_order_id="o1"))
    same = store.update(PARTNERS, "p1", lambda partner: UNCHANGED)

    assert same.version == 2
    assert same.record.active_order_id == "o1"


def test_find_on_json_fields(store):
    store.insert(PARTNERS, "p1", DeliveryPartner.new("p1", vehicle_type="bike"))
    store.insert(PARTNERS, "p2", DeliveryPartner.new("p2", is_online=False, is_available=False))
    store.insert(PARTNERS, "p3", DeliveryPartner.new("p3", vehicle_type="van"))

    def ids(**criteria):
        return [entry.record.id for entry in store.find(PARTNERS, **criteria)]

    assert ids(is_online=True, is_available=True) == ["p1", "p3"]
    assert ids(vehicle_type__in=["van", "truck"]) == ["p3"]
    assert ids(active_order_id=None) == ["p1", "p2", "p3"]


def test_sequences(store):
    assert [store.next_sequence("orders:20260314") for _ in range(3)] == [1, 2, 3]
