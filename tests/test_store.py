import json
import threading
from dataclasses import dataclass, replace
from typing import Optional

import pytest

from common.errors import ConcurrentUpdateError, DuplicateRecord, RecordNotFound
from orders.models import Order, OrderStatus, PaymentMethod
from payments.models import Payment
from storage.base import UNCHANGED
from storage.documents import from_document, to_document, to_json_value
from storage.memory import InMemoryStore


@dataclass
class Crate:
    id: str
    fruit: str
    count: int = 0
    origin: Optional[dict] = None


def test_insert_get_and_duplicate():
    store = InMemoryStore()
    created = store.insert("crates", "c1", Crate("c1", "mango"))

    assert created.version == 1
    assert store.get("crates", "c1").record == Crate("c1", "mango")
    assert store.get("crates", "missing") is None
    with pytest.raises(DuplicateRecord):
        store.insert("crates", "c1", Crate("c1", "okra"))
    with pytest.raises(RecordNotFound):
        store.require("crates", "missing")


def test_records_are_private_copies():
    store = InMemoryStore()
    crate = Crate("c1", "mango")
    store.insert("crates", "c1", crate)
    crate.count = 99

    fetched = store.get("crates", "c1").record
    fetched.count = 42

    assert store.get("crates", "c1").record.count == 0


def test_update_bumps_version_and_unchanged_skips_write():
    store = InMemoryStore()
    store.insert("crates", "c1", Crate("c1", "mango"))

    bumped = store.update("crates", "c1", lambda crate: replace(crate, count=crate.count + 1))
    skipped = store.update("crates", "c1", lambda crate: UNCHANGED)

    assert bumped.version == 2
    assert skipped.version == 2
    assert store.get("crates", "c1").record.count == 1


def test_stale_compare_and_set_loses():
    store = InMemoryStore()
    store.insert("crates", "c1", Crate("c1", "mango"))
    store.update("crates", "c1", lambda crate: replace(crate, count=5))

    assert store.compare_and_set("crates", "c1", 1, Crate("c1", "mango", 1)) is False
    assert store.compare_and_set("crates", "c1", 2, Crate("c1", "mango", 6)) is True
    assert store.get("crates", "c1").record.count == 6


def test_update_gives_up_after_repeated_conflicts():
    class AlwaysLosing(InMemoryStore):
        def compare_and_set(self, collection, key, expected_version, record):
            return False

    store = AlwaysLosing()
    store.insert("crates", "c1", Crate("c1", "mango"))
    with pytest.raises(ConcurrentUpdateError):
        store.update("crates", "c1", lambda crate: crate)


def test_concurrent_increments_are_not_lost():
    store = InMemoryStore()
    store.insert("crates", "c1", Crate("c1", "mango"))
    store.max_update_attempts = 1000

    def bump():
        for _ in range(50):
            store.update("crates", "c1", lambda crate: replace(crate, count=crate.count + 1))

    threads = [threading.Thread(target=bump) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get("crates", "c1").record.count == 200


def test_find_criteria():
    store = InMemoryStore()
    store.insert("crates", "c1", Crate("c1", "mango", 3, {"farm": "farm-1"}))
    store.insert("crates", "c2", Crate("c2", "okra", 0, {"farm": "farm-2"}))
    store.insert("crates", "c3", Crate("c3", "mango", 0))

    def ids(**criteria):
        return [entry.record.id for entry in store.find("crates", **criteria)]

    assert ids(fruit="mango") == ["c1", "c3"]
    assert ids(fruit__in=["okra", "mango"], count=0) == ["c2", "c3"]
    assert ids(origin__farm="farm-2") == ["c2"]
    assert ids(colour="red") == []
    assert store.find_one("crates", fruit="okra").record.id == "c2"
    assert store.find_one("crates", fruit="kiwi") is None


def test_sequences_count_per_name():
    store = InMemoryStore()
    assert [store.next_sequence("a") for _ in range(3)] == [1, 2, 3]
    assert store.next_sequence("b") == 1


def test_order_survives_a_json_round_trip(place_order):
    order, _ = place_order([("tomatoes", 3), ("okra", 2)])

    document = json.loads(json.dumps(to_document(order)))
    restored = from_document(Order, document)

    assert document["payment_method"] == "cod"
    assert document["subtotal"] == "245.00"
    assert document["delivery_address"]["coordinates"] == [10.80, 78.71]
    assert restored == order
    assert restored.payment_method is PaymentMethod.COD
    assert restored.delivery_address.coordinates == (10.80, 78.71)


def test_payment_with_gateway_ref_decodes(market, place_order):
    order, payment = place_order(method=PaymentMethod.UPI)
    settled = market.ledger.mark_completed(payment.correlation_id, "PAY_1", {"amount": 16000})

    restored = from_document(Payment, json.loads(json.dumps(to_document(settled))))

    assert restored == settled
    assert restored.gateway.external_payment_id == "PAY_1"


def test_lookup_values_match_stored_form(place_order):
    order, _ = place_order()
    document = to_document(order)

    assert to_json_value(OrderStatus.PENDING) == document["order_status"]
    assert to_json_value(order.created_at) == document["created_at"]
    assert to_json_value(order.final_amount) == document["final_amount"]
