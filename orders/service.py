"""
Purpose: Owns the Order record: creation, role-gated transitions and their effects.
What it does:
- create_order(): validates line items, reserves stock, prices and stores the order
- transition(): the single entry point for status changes (rules in
  dispatch/state_machines/order_state.py), mirrored into the Delivery
- cancel(), rate(), mark_paid() and friends
- reconcile(): re-applies every cross-record effect; all of them are idempotent

Rule: Every write is a compare-and-set (Store.update). Effects on other records
run after the order write and can be repeated safely.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from common.clock import utcnow
from common.errors import AuthorizationError, IllegalTransition, ValidationError
from deliveries.models import DeliveryConfirmation
from deliveries.tracker import current_delivery, follow_order
from dispatch.dispatcher import Dispatcher
from dispatch.state_machines.order_state import MIRRORED_STATUSES, apply_transition
from dispatch.state_machines.partner_state import handle_partner_release
from notifications.events import Event, EventType
from notifications.publisher import EventPublisher, safe_publish
from partners.registry import PartnerRegistry
from storage.base import ORDERS, PRODUCERS, UNCHANGED, Store

from .inventory import Inventory, Product
from .models import (
    Actor,
    Address,
    LineItem,
    Order,
    OrderPaymentStatus,
    OrderStatus,
    PaymentMethod,
    ProducerProfile,
    Role,
    money,
)
from .policy import PricingPolicy, default_pricing_policy

logger = logging.getLogger(__name__)


def format_order_number(day: datetime, sequence: int) -> str:
    return f"ORD-{day:%Y%m%d}-{sequence:05d}"


class OrderService:
    def __init__(
        self,
        store: Store,
        inventory: Inventory,
        partners: PartnerRegistry,
        dispatcher: Optional[Dispatcher] = None,
        publisher: Optional[EventPublisher] = None,
        pricing: Optional[PricingPolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.inventory = inventory
        self.partners = partners
        self.dispatcher = dispatcher
        self.publisher = publisher
        self.pricing = pricing or default_pricing_policy()
        self.clock = clock

    # ----------------
    # Reads
    # ----------------
    def get(self, order_id: str) -> Order:
        return self.store.require(ORDERS, order_id).record

    def get_for(self, order_id: str, actor: Actor) -> Order:
        order = self.get(order_id)
        if not order.is_party(actor):
            raise AuthorizationError(f"Not allowed to view order {order.order_number}")
        return order

    def list_orders(self, actor: Actor, status: Optional[OrderStatus] = None) -> List[Order]:
        criteria: Dict[str, Any] = {}
        if actor.role == Role.CUSTOMER:
            criteria["customer_id"] = actor.id
        elif actor.role == Role.PRODUCER:
            criteria["producer_id"] = actor.id
        elif actor.role == Role.DELIVERY_PARTNER:
            criteria["delivery_partner_id"] = actor.id
        if status is not None:
            try:
                criteria["order_status"] = OrderStatus(status).value
            except ValueError:
                raise ValidationError(f"Unknown order status: {status}") from None
        orders = [entry.record for entry in self.store.find(ORDERS, **criteria)]
        return sorted(orders, key=lambda order: order.created_at, reverse=True)

    # ----------------
    # Creation
    # ----------------
    def create_order(
        self,
        actor: Actor,
        items: Iterable[Tuple[str, int]],
        delivery_address: Address,
        payment_method: PaymentMethod,
        delivery_instructions: str = "",
        priority: str = "normal",
    ) -> Order:
        """
        Validates and prices the cart, reserves stock, stores the order.
        Stock reserved before a failure is put back before the error propagates.
        """
        if actor.role != Role.CUSTOMER:
            raise AuthorizationError("Only customers can place orders")

        requested = self._validate_items(items)
        self._validate_address(delivery_address)
        try:
            payment_method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {payment_method}") from None

        # 1. Look everything up and check it before touching stock
        products: List[Product] = []
        for product_id, quantity in requested:
            product = self.inventory.get_product(product_id)
            if product is None:
                raise ValidationError(f"Product {product_id} not found")
            if quantity < product.min_order_quantity:
                raise ValidationError(f"Minimum order quantity for {product.name} is {product.min_order_quantity}")
            if product.max_order_quantity is not None and quantity > product.max_order_quantity:
                raise ValidationError(f"Maximum order quantity for {product.name} is {product.max_order_quantity}")
            products.append(product)

        producer_id = products[0].seller_id
        if any(product.seller_id != producer_id for product in products):
            raise ValidationError("All items in an order must come from the same producer")

        now = self.clock()
        order_number = format_order_number(now, self.store.next_sequence(f"orders:{now:%Y%m%d}"))
        line_items = [
            LineItem.new(product.id, quantity, product.price)
            for product, (_, quantity) in zip(products, requested)
        ]
        subtotal = sum((item.total for item in line_items), Decimal("0"))

        producer = self.store.get(PRODUCERS, producer_id)
        order = Order.new(
            order_number=order_number,
            customer_id=actor.id,
            producer_id=producer_id,
            items=line_items,
            delivery_address=delivery_address,
            payment_method=payment_method,
            created_at=now,
            delivery_fee=self.pricing.delivery_fee,
            tax=money(subtotal * self.pricing.tax_rate),
            pickup_location=producer.record.location if producer else None,
            delivery_instructions=delivery_instructions,
            priority=priority,
        )

        # 2. Reserve stock, each line with its own idempotency key
        reserved: List[int] = []
        try:
            for index, item in enumerate(order.items):
                self.inventory.reserve(item.product_id, item.quantity, self._stock_key(order, "reserve", index))
                reserved.append(index)
        except Exception:
            for index in reserved:
                item = order.items[index]
                self.inventory.restore(item.product_id, item.quantity, self._stock_key(order, "release", index))
            raise

        # 3. Persist
        self.store.insert(ORDERS, order.id, order)
        logger.info("Order %s placed by %s for %s", order.order_number, actor.id, order.final_amount)

        safe_publish(self.publisher, [
            Event(
                EventType.ORDER_CREATED,
                order.id,
                order.producer_id,
                {
                    "orderNumber": order.order_number,
                    "finalAmount": str(order.final_amount),
                    "items": len(order.items),
                    "paymentMethod": order.payment_method.value,
                },
            )
        ])

        # COD orders are dispatchable right away; the rest wait for payment
        if order.is_dispatchable and self.dispatcher is not None:
            self.dispatcher.offer_order(order.id)
        return order

    def _validate_items(self, items: Iterable[Tuple[str, int]]) -> List[Tuple[str, int]]:
        requested = []
        for entry in items or []:
            try:
                product_id, quantity = entry
            except (TypeError, ValueError):
                raise ValidationError("Each item needs a product id and a quantity") from None
            if not product_id:
                raise ValidationError("Each item needs a product id")
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                raise ValidationError(f"Quantity for {product_id} must be a whole number of at least 1")
            requested.append((str(product_id), quantity))
        if not requested:
            raise ValidationError("Order must contain at least one item")
        return requested

    def _validate_address(self, address: Address) -> None:
        for name in ("street", "city", "state", "zip_code"):
            if not getattr(address, name, None):
                raise ValidationError(f"Delivery address {name} is required")
        if address.coordinates is not None:
            lat, lon = address.coordinates
            if not (-90 <= lat <= 90 and -180 <= lon <= 180):
                raise ValidationError("Delivery coordinates are out of range")

    @staticmethod
    def _stock_key(order: Order, action: str, index: int) -> str:
        return f"{order.id}:{action}:{index}"

    def recompute_totals(self, order_id: str) -> Order:
        """Re-derive subtotal and final amount from the stored line items."""
        def recompute(order: Order):
            before = (order.subtotal, order.final_amount)
            order.recompute_totals()
            if (order.subtotal, order.final_amount) == before:
                return UNCHANGED
            return order

        return self.store.update(ORDERS, order_id, recompute).record

    # ----------------
    # Transitions
    # ----------------
    def transition(
        self,
        order_id: str,
        actor: Actor,
        target: OrderStatus,
        note: str = "",
        confirmation: Optional[DeliveryConfirmation] = None,
    ) -> Order:
        """
        The single entry point for order status changes.
        """
        try:
            target = OrderStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown order status: {target}") from None

        if target == OrderStatus.CANCELLED:
            return self.cancel(order_id, actor, note)

        now = self.clock()
        previous: Dict[str, OrderStatus] = {}

        def move(order: Order):
            previous["status"] = order.order_status
            return apply_transition(order, actor, target, now, note)

        order = self.store.update(ORDERS, order_id, move).record
        logger.info("Order %s: %s -> %s by %s", order.order_number, previous["status"].value, target.value, actor.id)

        self._apply_effects(order, note=note, confirmation=confirmation)
        self._publish_status(order, actor, previous["status"], note)
        return order

    def cancel(self, order_id: str, actor: Actor, reason: str) -> Order:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")

        now = self.clock()
        previous: Dict[str, OrderStatus] = {}

        def cancel(order: Order):
            previous["status"] = order.order_status
            apply_transition(order, actor, OrderStatus.CANCELLED, now, reason)
            order.cancelled_by = actor.id
            order.cancellation_reason = reason
            order.cancellation_time = now
            return order

        order = self.store.update(ORDERS, order_id, cancel).record
        logger.info("Order %s cancelled by %s: %s", order.order_number, actor.id, reason)

        self._apply_effects(order, note=reason)
        self._publish_status(order, actor, previous["status"], reason)
        return order

    def _apply_effects(
        self,
        order: Order,
        note: str = "",
        confirmation: Optional[DeliveryConfirmation] = None,
    ) -> None:
        """Cross-record consequences of the order's current status. Idempotent."""
        if order.order_status in MIRRORED_STATUSES:
            follow_order(self.store, order, note=note, confirmation=confirmation)

        if order.order_status == OrderStatus.CANCELLED and not order.inventory_released:
            self._release_inventory(order)

        if order.is_terminal and order.delivery_partner_id:
            self.partners.apply(
                order.delivery_partner_id,
                lambda partner: handle_partner_release(partner, order.id),
            )

    def _release_inventory(self, order: Order) -> None:
        for index, item in enumerate(order.items):
            self.inventory.restore(item.product_id, item.quantity, self._stock_key(order, "release", index))

        def mark_released(record: Order):
            if record.inventory_released:
                return UNCHANGED
            record.inventory_released = True
            return record

        self.store.update(ORDERS, order.id, mark_released)

    def _publish_status(self, order: Order, actor: Actor, previous: OrderStatus, note: str) -> None:
        payload = {
            "orderNumber": order.order_number,
            "from": previous.value,
            "status": order.order_status.value,
            "note": note,
        }
        targets = {order.customer_id, order.producer_id}
        if order.delivery_partner_id:
            targets.add(order.delivery_partner_id)
        targets.discard(actor.id)
        safe_publish(self.publisher, [
            Event(EventType.ORDER_STATUS_CHANGED, order.id, target, payload)
            for target in sorted(targets)
        ])

    # ----------------
    # Rating
    # ----------------
    def rate(self, order_id: str, actor: Actor, rating: int, review: str = "") -> Order:
        if actor.role != Role.CUSTOMER:
            raise AuthorizationError("Only customers can rate orders")
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("Rating must be a whole number from 1 to 5")

        def rate(order: Order):
            if order.customer_id != actor.id:
                raise AuthorizationError(f"Order {order.order_number} does not belong to customer {actor.id}")
            if order.order_status != OrderStatus.DELIVERED:
                raise IllegalTransition(order.order_status, "rated", actor.role,
                                        message="Only delivered orders can be rated")
            if order.customer_rating is not None:
                raise ValidationError(f"Order {order.order_number} has already been rated")
            order.customer_rating = rating
            order.customer_review = review
            return order

        order = self.store.update(ORDERS, order_id, rate).record
        self._apply_rating(order)
        return order

    def _apply_rating(self, order: Order) -> ProducerProfile:
        self.store.insert_if_missing(PRODUCERS, order.producer_id, ProducerProfile(id=order.producer_id))

        def fold(profile: ProducerProfile):
            if order.id in profile.rated_orders:
                return UNCHANGED
            count = profile.total_ratings
            profile.rating = (profile.rating * count + order.customer_rating) / (count + 1)
            profile.total_ratings = count + 1
            profile.rated_orders = profile.rated_orders + [order.id]
            return profile

        return self.store.update(PRODUCERS, order.producer_id, fold).record

    def _rating_applied(self, order: Order) -> bool:
        entry = self.store.get(PRODUCERS, order.producer_id)
        return entry is not None and order.id in entry.record.rated_orders

    # ----------------
    # Payment side effects (called by the ledger)
    # ----------------
    def mark_paid(self, order_id: str, transaction_id: str) -> Order:
        """Payment completed. Idempotent; unlocks dispatch the first time."""
        changed = False

        def paid(order: Order):
            nonlocal changed
            changed = False
            if order.payment_status == OrderPaymentStatus.PAID:
                return UNCHANGED
            order.payment_status = OrderPaymentStatus.PAID
            order.payment_id = transaction_id
            changed = True
            return order

        order = self.store.update(ORDERS, order_id, paid).record
        if changed:
            logger.info("Order %s marked paid (%s)", order.order_number, transaction_id)
            if order.is_dispatchable and self.dispatcher is not None:
                self.dispatcher.offer_order(order.id)
        return order

    def mark_payment_status(self, order_id: str, status: OrderPaymentStatus) -> Order:
        """Mirror failed / refunded payment outcomes onto the order."""
        status = OrderPaymentStatus(status)

        def mirror(order: Order):
            if order.payment_status == status:
                return UNCHANGED
            # a late failure never un-pays an order
            if status == OrderPaymentStatus.FAILED and order.payment_status == OrderPaymentStatus.PAID:
                return UNCHANGED
            order.payment_status = status
            return order

        return self.store.update(ORDERS, order_id, mirror).record

    # ----------------
    # Reconciliation
    # ----------------
    def reconcile(self, order_id: str) -> Order:
        """
        Re-applies the effects of the order's current state: missing delivery
        record, delivery mirror, inventory release, partner release, producer rating.
        """
        order = self.get(order_id)
        if order.has_committed_partner and current_delivery(self.store, order) is None and self.dispatcher:
            self.dispatcher.ensure_delivery(order)
        self._apply_effects(order)
        if order.customer_rating is not None:
            self._apply_rating(order)
        return self.get(order_id)

    def reconcile_all(self) -> int:
        repaired = 0
        for entry in self.store.find(ORDERS):
            order = entry.record
            needs_release = order.order_status == OrderStatus.CANCELLED and not order.inventory_released
            needs_delivery = order.has_committed_partner and current_delivery(self.store, order) is None
            needs_rating = order.customer_rating is not None and not self._rating_applied(order)
            if needs_release or needs_delivery or needs_rating or order.order_status in MIRRORED_STATUSES:
                self.reconcile(order.id)
                repaired += 1
        return repaired
