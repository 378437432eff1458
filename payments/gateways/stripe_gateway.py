"""
Purpose: Stripe PaymentIntents.
What it does:
- create_intent(): POST /v1/payment_intents (amount in minor units, our order id in metadata)
- verify_webhook(): Stripe-Signature "t=<ts>,v1=<hex>" over "<ts>.<raw body>", 5 minute tolerance
- extract_correlation(): payment_intent.succeeded / payment_intent.payment_failed
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Mapping, Optional

import requests

from common.errors import GatewayUnavailable, SignatureInvalid

from .base import (
    GatewayIntent,
    PaymentGateway,
    WebhookEvent,
    WebhookKind,
    header,
    hmac_sha256_hex,
    minor_units,
    parse_json,
    signatures_match,
)

logger = logging.getLogger(__name__)

SIGNATURE_TOLERANCE_SECONDS = 300


def parse_signature_header(value: Optional[str]) -> Dict[str, str]:
    parts: Dict[str, str] = {}
    for piece in (value or "").split(","):
        key, sep, val = piece.strip().partition("=")
        if sep and key not in parts:
            parts[key] = val
    return parts


class StripeGateway(PaymentGateway):
    name = "stripe"

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        base_url: str = "https://api.stripe.com",
        timeout: int = 10,
        now: Callable[[], float] = time.time,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.now = now

    def create_intent(self, payment, order, customer_email: Optional[str] = None) -> GatewayIntent:
        url = f"{self.base_url}/v1/payment_intents"
        data = {
            "amount": minor_units(payment.amount),
            "currency": payment.currency.lower(),
            "metadata[order_id]": order.id,
            "metadata[transaction_id]": payment.transaction_id,
        }
        if customer_email:
            data["receipt_email"] = customer_email
        try:
            r = requests.post(url, data=data, auth=(self.secret_key, ""), timeout=self.timeout)
            r.raise_for_status()
            body = r.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Stripe create_intent failed for order %s: %s", order.id, exc)
            raise GatewayUnavailable(f"Stripe request failed: {exc}") from exc

        return GatewayIntent(
            external_order_id=body["id"],
            checkout={"clientSecret": body.get("client_secret"), "paymentIntentId": body["id"]},
        )

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        parts = parse_signature_header(header(headers, "Stripe-Signature"))
        timestamp = parts.get("t")
        if not timestamp or not timestamp.isdigit():
            raise SignatureInvalid("Missing Stripe-Signature timestamp")
        if abs(self.now() - int(timestamp)) > SIGNATURE_TOLERANCE_SECONDS:
            raise SignatureInvalid("Stripe-Signature timestamp outside tolerance")
        expected = hmac_sha256_hex(self.webhook_secret, timestamp.encode("utf-8") + b"." + body)
        if not signatures_match(expected, parts.get("v1")):
            logger.warning("Stripe signature mismatch")
            raise SignatureInvalid("Invalid Stripe signature")

    def extract_correlation(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        data = parse_json(body)
        event_type = data.get("type")
        intent = (data.get("data") or {}).get("object") or {}
        if event_type == "payment_intent.succeeded":
            kind = WebhookKind.COMPLETED
        elif event_type == "payment_intent.payment_failed":
            kind = WebhookKind.FAILED
        else:
            return WebhookEvent(kind=WebhookKind.IGNORED, payload=data)

        error = intent.get("last_payment_error") or {}
        return WebhookEvent(
            kind=kind,
            correlation_id=intent.get("id"),
            external_payment_id=intent.get("latest_charge") or intent.get("id"),
            signature=parse_signature_header(header(headers, "Stripe-Signature")).get("v1"),
            reason=error.get("message", "") if kind == WebhookKind.FAILED else "",
            payload=data,
        )
