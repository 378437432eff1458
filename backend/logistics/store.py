"""
Purpose: The Store contract on top of the Django ORM.
What it does:
- Each record is one Document row: (collection, key) unique, body = the record as a JSON document.
- insert(): unique constraint -> DuplicateRecord
- compare_and_set(): UPDATE ... WHERE version = expected, one statement,
  so it holds across processes and replicas
- find(): criteria become JSON key lookups on the body

Rule: Services never touch Document directly; they go through the Store API.
"""

import logging

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from common.errors import DuplicateRecord
from deliveries.models import Delivery
from orders.inventory import Product
from orders.models import Order, ProducerProfile
from partners.models import DeliveryPartner
from payments.models import Payment
from storage.base import (
    COUNTERS,
    DELIVERIES,
    ORDERS,
    PARTNERS,
    PAYMENTS,
    PRODUCERS,
    PRODUCTS,
    Counter,
    Store,
    Versioned,
)
from storage.documents import from_document, to_document, to_json_value

from .models import Document

logger = logging.getLogger(__name__)

RECORD_TYPES = {
    ORDERS: Order,
    PAYMENTS: Payment,
    DELIVERIES: Delivery,
    PARTNERS: DeliveryPartner,
    PRODUCTS: Product,
    PRODUCERS: ProducerProfile,
    COUNTERS: Counter,
}


class DjangoStore(Store):
    def _load(self, collection, document):
        return Versioned(from_document(RECORD_TYPES[collection], document.body), document.version)

    def insert(self, collection, key, record):
        try:
            with transaction.atomic():
                Document.objects.create(collection=collection, key=key, version=1, body=to_document(record))
        except IntegrityError:
            raise DuplicateRecord(f"{collection}/{key} already exists") from None
        return self.require(collection, key)

    def get(self, collection, key):
        document = Document.objects.filter(collection=collection, key=key).first()
        if document is None:
            return None
        return self._load(collection, document)

    def find(self, collection, **criteria):
        lookups = {}
        for name, value in criteria.items():
            if name.endswith("__in"):
                lookups[f"body__{name}"] = [to_json_value(item) for item in value]
            else:
                lookups[f"body__{name}"] = to_json_value(value)
        documents = Document.objects.filter(collection=collection, **lookups).order_by("created_at", "id")
        return [self._load(collection, document) for document in documents]

    def compare_and_set(self, collection, key, expected_version, record):
        updated = Document.objects.filter(
            collection=collection,
            key=key,
            version=expected_version,
        ).update(
            body=to_document(record),
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        return updated == 1
