"""
Purpose: One Marketplace per process for the API layer.
What it does:
Builds the core services over DjangoStore with the publisher, OSRM client and
policies the settings ask for. The broker and router are picked up from the
environment (RABBITMQ_URL, OSRM_BASE_URL) the same way scripts pick them up.
Tests replace it with monkeypatch or clear the cache with
get_marketplace.cache_clear().
"""

import logging
from decimal import Decimal
from functools import lru_cache

from django.conf import settings

from dispatch.services import Marketplace, build_marketplace
from notifications.publisher import NullPublisher, RabbitMQPublisher
from orders.policy import PricingPolicy
from partners.policy import DispatchPolicy
from routing.osrm_client import OSRMClient

from .store import DjangoStore

logger = logging.getLogger(__name__)


def build_publisher():
    publisher = RabbitMQPublisher.from_env()
    if publisher is None:
        logger.info("RABBITMQ_URL not set; events are not published")
        return NullPublisher()
    return publisher


@lru_cache(maxsize=1)
def get_marketplace() -> Marketplace:
    return build_marketplace(
        DjangoStore(),
        publisher=build_publisher(),
        dispatch_policy=DispatchPolicy(
            offer_radius_km=getattr(settings, "DISPATCH_OFFER_RADIUS_KM", 10.0),
            max_offers=getattr(settings, "DISPATCH_MAX_OFFERS", 10),
        ),
        pricing=PricingPolicy(
            delivery_fee=Decimal(str(getattr(settings, "ORDER_DELIVERY_FEE", "0.00"))),
            tax_rate=Decimal(str(getattr(settings, "ORDER_TAX_RATE", "0.00"))),
        ),
        osrm=OSRMClient.from_env(),
    )
