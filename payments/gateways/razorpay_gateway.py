"""
Purpose: Razorpay Orders API.
What it does:
- create_intent(): POST /v1/orders with basic auth, receipt = our transaction id
- verify_webhook(): X-Razorpay-Signature = hex HMAC-SHA256 of the raw body with the webhook secret
- extract_correlation(): payment.captured / payment.failed, correlated by payload.payment.entity.order_id
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

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


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        webhook_secret: str,
        base_url: str = "https://api.razorpay.com",
        timeout: int = 10,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def create_intent(self, payment, order, customer_email: Optional[str] = None) -> GatewayIntent:
        url = f"{self.base_url}/v1/orders"
        payload = {
            "amount": minor_units(payment.amount),
            "currency": payment.currency,
            "receipt": payment.transaction_id,
            "notes": {"order_id": order.id, "order_number": order.order_number},
        }
        try:
            r = requests.post(url, json=payload, auth=(self.key_id, self.key_secret), timeout=self.timeout)
            r.raise_for_status()
            body = r.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Razorpay create_intent failed for order %s: %s", order.id, exc)
            raise GatewayUnavailable(f"Razorpay request failed: {exc}") from exc

        return GatewayIntent(
            external_order_id=body["id"],
            checkout={"razorpayOrderId": body["id"], "keyId": self.key_id, "amount": body.get("amount")},
        )

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        expected = hmac_sha256_hex(self.webhook_secret, body)
        if not signatures_match(expected, header(headers, "X-Razorpay-Signature")):
            logger.warning("Razorpay signature mismatch")
            raise SignatureInvalid("Invalid Razorpay signature")

    def extract_correlation(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        data = parse_json(body)
        event_type = data.get("event")
        if event_type == "payment.captured":
            kind = WebhookKind.COMPLETED
        elif event_type == "payment.failed":
            kind = WebhookKind.FAILED
        else:
            return WebhookEvent(kind=WebhookKind.IGNORED, payload=data)

        entity = ((data.get("payload") or {}).get("payment") or {}).get("entity") or {}
        return WebhookEvent(
            kind=kind,
            correlation_id=entity.get("order_id"),
            external_payment_id=entity.get("id"),
            signature=header(headers, "X-Razorpay-Signature"),
            reason=(entity.get("error_description") or "") if kind == WebhookKind.FAILED else "",
            payload=data,
        )
