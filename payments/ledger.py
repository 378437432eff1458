"""
Purpose: The Payment Ledger. One Payment per order, driven by gateway callbacks.
What it does:
- initiate(): opens (or re-opens) the order's payment and, for non-COD methods,
  a checkout at the chosen gateway
- mark_completed() / mark_failed(): gateway outcomes, looked up by correlation id.
  Replays are no-ops.
- cancel(), refund(), confirm_cod(), capture()
- reconcile(): re-applies the order side effect of settled payments

Rule: The ledger only knows the PaymentGateway interface. Status changes follow
PAYMENT_TRANSITIONS and every write is a compare-and-set keyed by the order id.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from common.clock import utcnow
from common.errors import (
    AuthorizationError,
    DuplicateRecord,
    GatewayUnavailable,
    IllegalTransition,
    NotAssignedAgent,
    ValidationError,
)
from notifications.events import Event, EventType
from notifications.publisher import EventPublisher, safe_publish
from orders.models import Actor, Order, OrderPaymentStatus, OrderStatus, Role, money
from storage.base import ORDERS, PAYMENTS, UNCHANGED, Store

from .gateways.base import PaymentGateway
from .models import (
    RETRYABLE_STATUSES,
    GatewayRef,
    Payment,
    PaymentMethod,
    PaymentStatus,
    new_transaction_id,
)

if TYPE_CHECKING:
    from orders.service import OrderService

logger = logging.getLogger(__name__)


class PaymentLedger:
    def __init__(
        self,
        store: Store,
        gateways: Mapping[str, PaymentGateway],
        orders: Optional["OrderService"] = None,
        publisher: Optional[EventPublisher] = None,
        default_gateway: str = "simulated",
        clock: Callable[[], datetime] = utcnow,
        currency: str = "INR",
    ):
        self.store = store
        self.gateways = dict(gateways)
        self.orders = orders
        self.publisher = publisher
        self.default_gateway = default_gateway
        self.clock = clock
        self.currency = currency

    # ----------------
    # Reads
    # ----------------
    def get_for_order(self, order_id: str) -> Optional[Payment]:
        current = self.store.get(PAYMENTS, order_id)
        return current.record if current else None

    def find_by_correlation(self, correlation_id: Optional[str]) -> Optional[Payment]:
        if not correlation_id:
            return None
        match = self.store.find_one(PAYMENTS, gateway__external_order_id=correlation_id)
        return match.record if match else None

    def gateway(self, name: Optional[str] = None) -> PaymentGateway:
        name = name or self.default_gateway
        gateway = self.gateways.get(name)
        if gateway is None:
            raise ValidationError(f"Payment gateway '{name}' is not configured")
        return gateway

    # ----------------
    # Initiation
    # ----------------
    def initiate(
        self,
        order: Order,
        method: Optional[PaymentMethod] = None,
        gateway_name: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> Payment:
        """
        Returns the order's payment, creating it on first call.
        A failed or cancelled payment is re-opened as a new attempt; any other
        existing payment is returned as is.
        """
        try:
            method = PaymentMethod(method or order.payment_method)
        except ValueError:
            raise ValidationError(f"Unknown payment method: {method}") from None
        if method != order.payment_method:
            raise ValidationError(
                f"Order {order.order_number} is to be paid by {order.payment_method.value}, not {method.value}"
            )
        if order.order_status == OrderStatus.CANCELLED:
            raise ValidationError(f"Order {order.order_number} is cancelled")

        gateway = None if method == PaymentMethod.COD else self.gateway(gateway_name)
        now = self.clock()

        # 1. Claim the attempt
        payment, opened = self._open_attempt(order, method, now)
        if not opened or gateway is None:
            return payment

        # 2. Checkout at the gateway
        try:
            intent = gateway.create_intent(payment, order, customer_email=customer_email)
        except GatewayUnavailable as exc:
            logger.warning("Gateway %s unavailable for order %s: %s", gateway.name, order.order_number, exc)
            self._fail_attempt(order.id, payment.transaction_id, str(exc))
            raise

        ref = GatewayRef(name=gateway.name, external_order_id=intent.external_order_id, checkout=dict(intent.checkout))

        def attach(record: Payment):
            if record.transaction_id != payment.transaction_id or record.status != PaymentStatus.PENDING:
                return UNCHANGED
            record.gateway = ref
            record.record(PaymentStatus.PROCESSING, now, f"Checkout opened at {gateway.name}")
            return record

        payment = self.store.update(PAYMENTS, order.id, attach).record
        logger.info("Payment %s for order %s processing at %s", payment.transaction_id, order.order_number, gateway.name)
        return payment

    def _open_attempt(self, order: Order, method: PaymentMethod, at: datetime):
        """(payment, opened). `opened` is False when an existing live payment was returned."""
        existing = self.store.get(PAYMENTS, order.id)
        if existing is None:
            payment = Payment(
                id=uuid.uuid4().hex,
                order_id=order.id,
                customer_id=order.customer_id,
                amount=order.final_amount,
                method=method,
                transaction_id=new_transaction_id(),
                created_at=at,
                currency=self.currency,
            )
            payment.record(PaymentStatus.PENDING, at, "Payment created")
            try:
                return self.store.insert(PAYMENTS, order.id, payment).record, True
            except DuplicateRecord:
                # a concurrent initiate got there first
                logger.info("Payment for order %s already exists", order.order_number)

        opened = False

        def reopen(record: Payment):
            nonlocal opened
            opened = False
            if record.status not in RETRYABLE_STATUSES:
                return UNCHANGED
            record.transaction_id = new_transaction_id()
            record.amount = order.final_amount
            record.method = method
            record.gateway = None
            record.gateway_response = None
            record.failure_reason = None
            record.attempts += 1
            record.record(PaymentStatus.PENDING, at, f"Attempt {record.attempts} opened")
            opened = True
            return record

        payment = self.store.update(PAYMENTS, order.id, reopen).record
        return payment, opened

    def _fail_attempt(self, order_id: str, transaction_id: str, reason: str) -> None:
        now = self.clock()

        def fail(record: Payment):
            if record.transaction_id != transaction_id or not record.can_move_to(PaymentStatus.FAILED):
                return UNCHANGED
            record.failure_reason = reason
            record.record(PaymentStatus.FAILED, now, reason)
            return record

        self.store.update(PAYMENTS, order_id, fail)
        if self.orders is not None:
            self.orders.mark_payment_status(order_id, OrderPaymentStatus.FAILED)

    # ----------------
    # Gateway outcomes
    # ----------------
    def mark_completed(
        self,
        correlation_id: Optional[str],
        external_payment_id: Optional[str],
        raw_payload: Optional[Dict[str, Any]] = None,
        signature: Optional[str] = None,
    ) -> Optional[Payment]:
        """
        Settles the payment matching the gateway correlation id. Idempotent.
        Returns None when nothing matches.
        """
        payment = self.find_by_correlation(correlation_id)
        if payment is None:
            logger.warning("No payment matches gateway correlation id %s", correlation_id)
            return None

        now = self.clock()
        changed = False

        def complete(record: Payment):
            nonlocal changed
            changed = False
            if record.correlation_id != correlation_id:
                logger.warning(
                    "Success callback for %s arrived after payment %s moved to attempt %d; ignored",
                    correlation_id, record.transaction_id, record.attempts,
                )
                return UNCHANGED
            if record.status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
                return UNCHANGED
            if not record.can_move_to(PaymentStatus.COMPLETED):
                logger.warning(
                    "Ignoring success callback for payment %s in status %s",
                    record.transaction_id, record.status.value,
                )
                return UNCHANGED
            record.gateway = replace(record.gateway, external_payment_id=external_payment_id, signature=signature)
            record.gateway_response = raw_payload
            record.failure_reason = None
            record.record(PaymentStatus.COMPLETED, now, "Payment completed")
            changed = True
            return record

        payment = self.store.update(PAYMENTS, payment.order_id, complete).record
        if changed:
            self._settled(payment, EventType.PAYMENT_COMPLETED)
        return payment

    def mark_failed(
        self,
        correlation_id: Optional[str],
        reason: str,
        raw_payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[Payment]:
        payment = self.find_by_correlation(correlation_id)
        if payment is None:
            logger.warning("No payment matches gateway correlation id %s", correlation_id)
            return None

        now = self.clock()
        changed = False

        def fail(record: Payment):
            nonlocal changed
            changed = False
            if record.correlation_id != correlation_id:
                logger.warning(
                    "Failure callback for %s arrived after payment %s moved to attempt %d; ignored",
                    correlation_id, record.transaction_id, record.attempts,
                )
                return UNCHANGED
            if record.status == PaymentStatus.FAILED or not record.can_move_to(PaymentStatus.FAILED):
                return UNCHANGED
            record.gateway_response = raw_payload
            record.failure_reason = reason or "Payment failed"
            record.record(PaymentStatus.FAILED, now, record.failure_reason)
            changed = True
            return record

        payment = self.store.update(PAYMENTS, payment.order_id, fail).record
        if changed:
            logger.warning("Payment %s for order %s failed: %s", payment.transaction_id, payment.order_id, reason)
            if self.orders is not None:
                self.orders.mark_payment_status(payment.order_id, OrderPaymentStatus.FAILED)
        return payment

    def capture(self, order_id: str, actor: Actor) -> Optional[Payment]:
        """Capture an approved checkout for gateways that need it (PayPal)."""
        payment = self.store.require(PAYMENTS, order_id).record
        self._require_customer(payment, actor)
        if payment.gateway is None or not payment.gateway.external_order_id:
            raise ValidationError(f"Payment for order {order_id} has no gateway checkout")

        gateway = self.gateway(payment.gateway.name)
        capture_order = getattr(gateway, "capture_order", None)
        if capture_order is None:
            raise ValidationError(f"Gateway {gateway.name} does not support capture")

        result = capture_order(payment.gateway.external_order_id)
        if result.get("status") != "COMPLETED":
            return self.mark_failed(payment.correlation_id, f"Capture returned {result.get('status')}", result)

        captures = [
            capture
            for unit in result.get("purchase_units", [])
            for capture in (unit.get("payments") or {}).get("captures", [])
        ]
        capture_id = captures[0].get("id") if captures else None
        return self.mark_completed(payment.correlation_id, capture_id, result)

    # ----------------
    # Actor operations
    # ----------------
    def cancel(self, order_id: str, actor: Actor, reason: str) -> Payment:
        payment = self.store.require(PAYMENTS, order_id).record
        self._require_customer(payment, actor)
        now = self.clock()

        def cancel(record: Payment):
            if record.status == PaymentStatus.CANCELLED:
                return UNCHANGED
            if not record.can_move_to(PaymentStatus.CANCELLED):
                raise IllegalTransition(record.status, PaymentStatus.CANCELLED, actor.role)
            record.failure_reason = reason or "Cancelled"
            record.record(PaymentStatus.CANCELLED, now, reason or "Cancelled by customer")
            return record

        payment = self.store.update(PAYMENTS, order_id, cancel).record
        logger.info("Payment %s for order %s cancelled by %s", payment.transaction_id, order_id, actor.id)
        return payment

    def refund(self, order_id: str, actor: Actor, amount, reason: str) -> Payment:
        """
        Refund a completed payment, in full or in part. Only the order's producer or an admin may refund.
        """
        order = self.store.require(ORDERS, order_id).record
        if not (actor.role == Role.ADMIN or (actor.role == Role.PRODUCER and actor.id == order.producer_id)):
            raise AuthorizationError("Only the producer or an admin can refund an order")
        if not reason or not reason.strip():
            raise ValidationError("A refund reason is required")
        amount = self._amount(amount)
        now = self.clock()

        def refund(record: Payment):
            if not record.can_move_to(PaymentStatus.REFUNDED):
                raise IllegalTransition(record.status, PaymentStatus.REFUNDED, actor.role,
                                        message=f"Only completed payments can be refunded, not {record.status.value}")
            if not Decimal("0") < amount <= record.amount:
                raise ValidationError(f"Refund amount must be between 0 and {record.amount}")
            record.refund_amount = amount
            record.refund_reason = reason
            record.refund_date = now
            record.record(PaymentStatus.REFUNDED, now, reason, amount=amount)
            return record

        payment = self.store.update(PAYMENTS, order_id, refund).record
        logger.info("Refunded %s on order %s: %s", amount, order.order_number, reason)
        if self.orders is not None:
            self.orders.mark_payment_status(order_id, OrderPaymentStatus.REFUNDED)
        return payment

    def confirm_cod(self, order_id: str, actor: Actor, amount) -> Payment:
        """The assigned partner confirms the cash collected at the door."""
        if actor.role != Role.DELIVERY_PARTNER:
            raise AuthorizationError("Only delivery partners can confirm cash payments")
        order = self.store.require(ORDERS, order_id).record
        if order.delivery_partner_id != actor.id:
            raise NotAssignedAgent(f"Order {order.order_number} is not assigned to partner {actor.id}")
        if order.payment_method != PaymentMethod.COD:
            raise ValidationError(f"Order {order.order_number} is not cash on delivery")

        amount = self._amount(amount)
        now = self.clock()
        changed = False

        def collect(record: Payment):
            nonlocal changed
            changed = False
            if record.status == PaymentStatus.COMPLETED:
                return UNCHANGED
            if not record.can_move_to(PaymentStatus.COMPLETED):
                raise IllegalTransition(record.status, PaymentStatus.COMPLETED, actor.role)
            if amount != record.amount:
                raise ValidationError(f"Collected amount {amount} does not match the amount due {record.amount}")
            record.record(PaymentStatus.COMPLETED, now, f"Cash collected by {actor.id}")
            changed = True
            return record

        payment = self.store.update(PAYMENTS, order_id, collect).record
        if changed:
            self._settled(payment, EventType.PAYMENT_COD_CONFIRMED)
        return payment

    # ----------------
    # Reconciliation
    # ----------------
    def reconcile(self) -> int:
        """Re-applies the order side effect of every settled or refunded payment."""
        if self.orders is None:
            return 0
        repaired = 0
        for entry in self.store.find(PAYMENTS, status__in=[PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value]):
            payment = entry.record
            order = self.store.get(ORDERS, payment.order_id)
            if order is None:
                logger.warning("Payment %s points at missing order %s", payment.transaction_id, payment.order_id)
                continue
            if payment.status == PaymentStatus.COMPLETED and order.record.payment_status != OrderPaymentStatus.PAID:
                self.orders.mark_paid(payment.order_id, payment.transaction_id)
                repaired += 1
            elif payment.status == PaymentStatus.REFUNDED and order.record.payment_status != OrderPaymentStatus.REFUNDED:
                self.orders.mark_payment_status(payment.order_id, OrderPaymentStatus.REFUNDED)
                repaired += 1
        return repaired

    # ----------------
    # Helpers
    # ----------------
    def _settled(self, payment: Payment, event_type: EventType) -> None:
        logger.info("Payment %s for order %s completed (%s)", payment.transaction_id, payment.order_id, payment.amount)
        if self.orders is None:
            return
        order = self.orders.mark_paid(payment.order_id, payment.transaction_id)
        payload = {
            "orderNumber": order.order_number,
            "transactionId": payment.transaction_id,
            "amount": str(payment.amount),
            "method": payment.method.value,
        }
        safe_publish(self.publisher, [
            Event(event_type, order.id, order.customer_id, payload),
            Event(event_type, order.id, order.producer_id, payload),
        ])

    @staticmethod
    def _require_customer(payment: Payment, actor: Actor) -> None:
        if actor.role == Role.ADMIN:
            return
        if actor.role != Role.CUSTOMER or actor.id != payment.customer_id:
            raise AuthorizationError("Only the paying customer can do that")

    @staticmethod
    def _amount(value) -> Decimal:
        try:
            return money(value)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(f"Invalid amount: {value}") from None
