import json

import pytest

from common.errors import RecordNotFound, SignatureInvalid
from notifications.events import EventType
from orders.models import OrderPaymentStatus, PaymentMethod
from payments.gateways.base import WebhookKind, hmac_sha256_hex
from payments.gateways.razorpay_gateway import RazorpayGateway
from payments.models import PaymentStatus


def test_signed_success_settles_the_order(market, place_order, gateway):
    order, payment = place_order(method=PaymentMethod.UPI)
    body = gateway.build_callback(payment.correlation_id, external_payment_id="PAY_42")

    result = market.webhooks.handle("simulated", body, {"Content-Type": "application/json"})

    assert result.acknowledged and result.matched
    assert result.kind == WebhookKind.COMPLETED
    assert result.payment.status == PaymentStatus.COMPLETED
    assert result.payment.gateway.external_payment_id == "PAY_42"
    assert result.payment.gateway.signature == gateway.sign(payment.correlation_id, "PAY_42")
    assert market.orders.get(order.id).payment_status == OrderPaymentStatus.PAID


def test_replayed_callback_is_a_no_op(market, place_order, gateway, publisher):
    order, payment = place_order(method=PaymentMethod.UPI)
    body = gateway.build_callback(payment.correlation_id)

    first = market.webhooks.handle("simulated", body, {})
    second = market.webhooks.handle("simulated", body, {})

    assert second.matched
    assert second.payment.history == first.payment.history
    assert len(publisher.of_type(EventType.PAYMENT_COMPLETED)) == 2


def test_bad_signature_touches_nothing(market, place_order, gateway):
    order, payment = place_order(method=PaymentMethod.UPI)
    data = json.loads(gateway.build_callback(payment.correlation_id))
    data["signature"] = "0" * 64

    with pytest.raises(SignatureInvalid):
        market.webhooks.handle("simulated", json.dumps(data).encode(), {})

    assert market.ledger.get_for_order(order.id).status == PaymentStatus.PROCESSING
    assert market.orders.get(order.id).payment_status == OrderPaymentStatus.PENDING


def test_flipped_outcome_fails_the_signature(market, place_order, gateway):
    order, payment = place_order(method=PaymentMethod.UPI)
    data = json.loads(gateway.build_callback(payment.correlation_id, success=False))
    data["success"] = True

    with pytest.raises(SignatureInvalid):
        market.webhooks.handle("simulated", json.dumps(data).encode(), {})

    assert market.ledger.get_for_order(order.id).status == PaymentStatus.PROCESSING
    assert market.orders.get(order.id).payment_status == OrderPaymentStatus.PENDING


def test_unmatched_callback_is_acknowledged(market, place_order, gateway, caplog):
    order, _ = place_order(method=PaymentMethod.UPI)

    result = market.webhooks.handle("simulated", gateway.build_callback("ORD_nobody"), {})

    assert result.acknowledged is True
    assert result.matched is False
    assert "ORD_nobody" in caplog.text
    assert market.ledger.get_for_order(order.id).status == PaymentStatus.PROCESSING


def test_declined_callback_fails_the_payment(market, place_order, gateway):
    order, payment = place_order(method=PaymentMethod.UPI)

    result = market.webhooks.handle("simulated", gateway.build_callback(payment.correlation_id, success=False), {})

    assert result.kind == WebhookKind.FAILED
    assert result.payment.status == PaymentStatus.FAILED
    assert result.payment.failure_reason == "Payment declined"
    assert market.orders.get(order.id).payment_status == OrderPaymentStatus.FAILED


def test_unknown_gateway_is_not_found(market):
    with pytest.raises(RecordNotFound):
        market.webhooks.handle("bitcoin", b"{}", {})


def test_events_without_outcome_are_ignored(market):
    razorpay = RazorpayGateway("key", "secret", "hook")
    market.webhooks.gateways["razorpay"] = razorpay
    body = json.dumps({"event": "order.paid", "payload": {}}).encode()

    result = market.webhooks.handle("razorpay", body, {"x-razorpay-signature": hmac_sha256_hex("hook", body)})

    assert result.acknowledged is True
    assert result.kind == WebhookKind.IGNORED
    assert result.matched is False
