"""
Purpose: Wires the marketplace together over one Store.
What it does:
build_marketplace() creates every service with shared collaborators (store,
publisher, clock) and resolves the order <-> dispatcher <-> ledger references.
Used by the Django backend, the simulation script and the tests.

Example:
    market = build_marketplace(InMemoryStore(), publisher=InMemoryPublisher())
    order, payment = market.place_order(customer, [("tomatoes", 5)], address, "cod")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional, Tuple

from common.clock import utcnow
from deliveries.tracker import DeliveryTracker
from notifications.publisher import EventPublisher, NullPublisher
from orders.inventory import Inventory
from orders.models import Actor, Address, Order, PaymentMethod, ProducerProfile
from orders.policy import PricingPolicy, default_pricing_policy
from orders.service import OrderService
from partners.policy import DispatchPolicy, default_dispatch_policy
from partners.registry import PartnerRegistry
from payments.config import GatewaySettings
from payments.gateways import build_gateways
from payments.gateways.base import PaymentGateway
from payments.ledger import PaymentLedger
from payments.models import Payment
from payments.webhooks import WebhookProcessor
from routing.eta_service import EtaEstimator
from routing.osrm_client import OSRMClient
from storage.base import PRODUCERS, Store

from .dispatcher import Dispatcher

logger = logging.getLogger(__name__)


@dataclass
class Marketplace:
    store: Store
    publisher: EventPublisher
    inventory: Inventory
    partners: PartnerRegistry
    dispatcher: Dispatcher
    orders: OrderService
    tracker: DeliveryTracker
    ledger: PaymentLedger
    webhooks: WebhookProcessor

    def add_producer(self, profile: ProducerProfile) -> ProducerProfile:
        return self.store.insert_if_missing(PRODUCERS, profile.id, profile).record

    def place_order(
        self,
        actor: Actor,
        items: Iterable[Tuple[str, int]],
        delivery_address: Address,
        payment_method: PaymentMethod,
        gateway: Optional[str] = None,
        delivery_instructions: str = "",
        customer_email: Optional[str] = None,
    ) -> Tuple[Order, Payment]:
        """Checkout: create the order, then open its payment."""
        order = self.orders.create_order(
            actor,
            items,
            delivery_address,
            payment_method,
            delivery_instructions=delivery_instructions,
        )
        payment = self.ledger.initiate(order, gateway_name=gateway, customer_email=customer_email)
        return self.orders.get(order.id), payment

    def reconcile(self) -> Dict[str, int]:
        """Sweep: payments first (they can unlock dispatch), then orders."""
        payments = self.ledger.reconcile()
        orders = self.orders.reconcile_all()
        logger.info("Reconciled %d payments and %d orders", payments, orders)
        return {"payments": payments, "orders": orders}


def build_marketplace(
    store: Store,
    publisher: Optional[EventPublisher] = None,
    gateways: Optional[Dict[str, PaymentGateway]] = None,
    gateway_settings: Optional[GatewaySettings] = None,
    dispatch_policy: Optional[DispatchPolicy] = None,
    pricing: Optional[PricingPolicy] = None,
    osrm: Optional[OSRMClient] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Marketplace:
    publisher = publisher or NullPublisher()
    settings = gateway_settings or GatewaySettings.from_env()
    gateways = gateways if gateways is not None else build_gateways(settings)

    dispatch_policy = dispatch_policy or default_dispatch_policy()
    dispatch_policy.validate()
    pricing = pricing or default_pricing_policy()
    pricing.validate()

    eta = EtaEstimator(
        osrm=osrm,
        average_speed_kmh=dispatch_policy.average_speed_kmh,
        handling_minutes=dispatch_policy.handling_minutes,
        default_minutes=dispatch_policy.default_estimated_minutes,
    )

    inventory = Inventory(store)
    partners = PartnerRegistry(store)
    dispatcher = Dispatcher(store, partners, publisher=publisher, policy=dispatch_policy, eta=eta, clock=clock)
    orders = OrderService(
        store,
        inventory,
        partners,
        dispatcher=dispatcher,
        publisher=publisher,
        pricing=pricing,
        clock=clock,
    )
    tracker = DeliveryTracker(store, orders, partners, publisher=publisher, clock=clock)
    ledger = PaymentLedger(
        store,
        gateways,
        orders=orders,
        publisher=publisher,
        default_gateway=settings.default_gateway,
        clock=clock,
        currency=pricing.currency,
    )
    webhooks = WebhookProcessor(ledger, gateways)

    return Marketplace(
        store=store,
        publisher=publisher,
        inventory=inventory,
        partners=partners,
        dispatcher=dispatcher,
        orders=orders,
        tracker=tracker,
        ledger=ledger,
        webhooks=webhooks,
    )
