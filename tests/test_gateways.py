import json
from decimal import Decimal
from urllib.parse import urlencode

import pytest
import requests

from common.errors import GatewayUnavailable, SignatureInvalid, ValidationError
from payments.config import GatewaySettings
from payments.gateways import build_gateways
from payments.gateways.base import WebhookKind, header, hmac_sha256_hex, minor_units
from payments.gateways.paynow_gateway import PaynowGateway, paynow_hash
from payments.gateways.razorpay_gateway import RazorpayGateway
from payments.gateways.simulated import SimulatedGateway
from payments.gateways.stripe_gateway import StripeGateway, parse_signature_header

NOW = 1_773_478_800


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def test_helpers():
    assert header({"Stripe-Signature": "x"}, "stripe-signature") == "x"
    assert header({}, "missing") is None
    assert minor_units(Decimal("212.50")) == 21250


def test_simulated_callback_round_trip():
    gateway = SimulatedGateway("s3cret")
    body = gateway.build_callback("ORD_1", success=True, external_payment_id="PAY_1")

    gateway.verify_webhook(body, {})
    event = gateway.extract_correlation(body, {})

    assert event.kind == WebhookKind.COMPLETED
    assert event.correlation_id == "ORD_1"
    assert event.external_payment_id == "PAY_1"


def test_simulated_rejects_tampering():
    gateway = SimulatedGateway("s3cret")
    data = json.loads(gateway.build_callback("ORD_1", external_payment_id="PAY_1"))
    data["externalOrderId"] = "ORD_2"

    with pytest.raises(SignatureInvalid):
        gateway.verify_webhook(json.dumps(data).encode(), {})
    with pytest.raises(SignatureInvalid):
        SimulatedGateway("other").verify_webhook(gateway.build_callback("ORD_1"), {})
    with pytest.raises(ValidationError):
        gateway.verify_webhook(b"not json", {})


def test_simulated_failure_callback():
    gateway = SimulatedGateway("s3cret")
    event = gateway.extract_correlation(gateway.build_callback("ORD_1", success=False), {})
    assert event.kind == WebhookKind.FAILED
    assert event.reason == "Payment declined"


def test_simulated_failure_rate_bounds():
    with pytest.raises(ValueError):
        SimulatedGateway("s", failure_rate=1.5)


def stripe_header(secret, body, timestamp=NOW):
    signature = hmac_sha256_hex(secret, str(timestamp).encode() + b"." + body)
    return {"Stripe-Signature": f"t={timestamp},v1={signature}"}


def test_stripe_signature_and_tolerance():
    gateway = StripeGateway("sk_test", "whsec_test", now=lambda: NOW + 10)
    body = json.dumps({
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_123", "latest_charge": "ch_1"}},
    }).encode()

    gateway.verify_webhook(body, stripe_header("whsec_test", body))
    event = gateway.extract_correlation(body, stripe_header("whsec_test", body))
    assert event.kind == WebhookKind.COMPLETED
    assert event.correlation_id == "pi_123"
    assert event.external_payment_id == "ch_1"

    with pytest.raises(SignatureInvalid):
        gateway.verify_webhook(body, stripe_header("wrong", body))
    with pytest.raises(SignatureInvalid, match="tolerance"):
        gateway.verify_webhook(body, stripe_header("whsec_test", body, timestamp=NOW - 600))
    with pytest.raises(SignatureInvalid):
        gateway.verify_webhook(body, {})


def test_stripe_event_kinds():
    gateway = StripeGateway("sk_test", "whsec_test")
    failed = json.dumps({
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": "pi_9", "last_payment_error": {"message": "Card declined"}}},
    }).encode()
    other = json.dumps({"type": "charge.refunded", "data": {"object": {}}}).encode()

    event = gateway.extract_correlation(failed, {})
    assert event.kind == WebhookKind.FAILED
    assert event.reason == "Card declined"
    assert gateway.extract_correlation(other, {}).kind == WebhookKind.IGNORED


def test_parse_signature_header_keeps_first_value():
    assert parse_signature_header("t=1,v1=a,v1=b,v0=c") == {"t": "1", "v1": "a", "v0": "c"}


def test_stripe_create_intent(monkeypatch, place_order):
    order, payment = place_order()
    sent = {}

    def fake_post(url, data=None, auth=None, timeout=None):
        sent.update(url=url, data=data, auth=auth)
        return FakeResponse({"id": "pi_1", "client_secret": "pi_1_secret"})

    monkeypatch.setattr(requests, "post", fake_post)
    intent = StripeGateway("sk_test", "whsec").create_intent(payment, order, customer_email="a@b.in")

    assert intent.external_order_id == "pi_1"
    assert intent.checkout["clientSecret"] == "pi_1_secret"
    assert sent["url"] == "https://api.stripe.com/v1/payment_intents"
    assert sent["data"]["amount"] == minor_units(payment.amount)
    assert sent["data"]["receipt_email"] == "a@b.in"
    assert sent["auth"] == ("sk_test", "")


def test_stripe_outage_is_gateway_unavailable(monkeypatch, place_order):
    order, payment = place_order()

    def refuse(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "post", refuse)
    with pytest.raises(GatewayUnavailable):
        StripeGateway("sk_test", "whsec").create_intent(payment, order)


def test_razorpay_webhook():
    gateway = RazorpayGateway("rzp_key", "rzp_secret", "hook_secret")
    body = json.dumps({
        "event": "payment.failed",
        "payload": {"payment": {"entity": {"id": "pay_1", "order_id": "order_1", "error_description": "Bank down"}}},
    }).encode()
    headers = {"X-Razorpay-Signature": hmac_sha256_hex("hook_secret", body)}

    gateway.verify_webhook(body, headers)
    event = gateway.extract_correlation(body, headers)

    assert event.kind == WebhookKind.FAILED
    assert event.correlation_id == "order_1"
    assert event.reason == "Bank down"
    with pytest.raises(SignatureInvalid):
        gateway.verify_webhook(body + b" ", headers)


def test_razorpay_create_intent_failure(monkeypatch, place_order):
    order, payment = place_order()
    monkeypatch.setattr(requests, "post", lambda *args, **kwargs: FakeResponse({}, status_code=502))
    with pytest.raises(GatewayUnavailable):
        RazorpayGateway("k", "s", "w").create_intent(payment, order)


def test_paynow_status_update():
    gateway = PaynowGateway("1201", "integration-key", "http://return", "http://result")
    values = {
        "reference": "TXN1",
        "paynowreference": "91234",
        "amount": "212.50",
        "status": "Paid",
        "pollurl": "https://www.paynow.co.zw/poll",
    }
    values["hash"] = paynow_hash(values, "integration-key")
    body = urlencode(values).encode()

    gateway.verify_webhook(body, {})
    event = gateway.extract_correlation(body, {})

    assert event.kind == WebhookKind.COMPLETED
    assert event.correlation_id == "TXN1"
    assert event.external_payment_id == "91234"

    values["amount"] = "1.00"
    with pytest.raises(SignatureInvalid):
        gateway.verify_webhook(urlencode(values).encode(), {})


def test_paynow_hash_ignores_hash_field():
    values = {"status": "Cancelled", "reference": "TXN2"}
    first = paynow_hash(values, "key")
    assert paynow_hash(dict(values, hash="whatever"), "key") == first
    assert first == first.upper()


def test_build_gateways_only_with_credentials():
    assert list(build_gateways(GatewaySettings())) == ["simulated"]

    configured = build_gateways(GatewaySettings(
        stripe_secret_key="sk", stripe_webhook_secret="wh",
        razorpay_key_id="id", razorpay_key_secret="secret", razorpay_webhook_secret="wh",
    ))
    assert sorted(configured) == ["razorpay", "simulated", "stripe"]
