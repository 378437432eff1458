"""
Purpose: A stand-in gateway for development and tests.
What it does:
Hands out ORD_/PAY_ ids and signs its callbacks with HMAC-SHA256 over
"externalOrderId|externalPaymentId|outcome" (outcome: paid or declined), so the
webhook path is exercised exactly like a real provider's. `failure_rate` makes
create_intent fail the way an unreachable provider does.

Callback body: {success, externalOrderId, externalPaymentId, signature}
"""

from __future__ import annotations

import json
import logging
import random
import secrets
import time
from typing import Any, Mapping, Optional

from common.errors import GatewayUnavailable, SignatureInvalid

from .base import (
    GatewayIntent,
    PaymentGateway,
    WebhookEvent,
    WebhookKind,
    hmac_sha256_hex,
    parse_json,
    signatures_match,
)

logger = logging.getLogger(__name__)


class SimulatedGateway(PaymentGateway):
    name = "simulated"

    def __init__(self, secret: str, failure_rate: float = 0.0, rng: Optional[random.Random] = None):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0 and 1")
        self.secret = secret
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    @staticmethod
    def _new_id(prefix: str) -> str:
        return f"{prefix}_{int(time.time() * 1000)}{secrets.token_hex(3)}"

    def sign(self, external_order_id: str, external_payment_id: str, success: bool = True) -> str:
        outcome = "paid" if success else "declined"
        message = f"{external_order_id}|{external_payment_id}|{outcome}"
        return hmac_sha256_hex(self.secret, message.encode("utf-8"))

    def create_intent(self, payment, order, customer_email: Optional[str] = None) -> GatewayIntent:
        if self.failure_rate and self.rng.random() < self.failure_rate:
            raise GatewayUnavailable("Simulated gateway declined to open a checkout")
        external_order_id = self._new_id("ORD")
        return GatewayIntent(
            external_order_id=external_order_id,
            checkout={"externalOrderId": external_order_id, "amount": str(payment.amount), "currency": payment.currency},
        )

    def build_callback(self, external_order_id: str, success: bool = True, external_payment_id: Optional[str] = None) -> bytes:
        """What the simulated provider would POST back once the customer pays."""
        external_payment_id = external_payment_id or self._new_id("PAY")
        body: dict[str, Any] = {
            "success": success,
            "externalOrderId": external_order_id,
            "externalPaymentId": external_payment_id,
            "signature": self.sign(external_order_id, external_payment_id, success),
        }
        return json.dumps(body).encode("utf-8")

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        data = parse_json(body)
        external_order_id = str(data.get("externalOrderId") or "")
        external_payment_id = str(data.get("externalPaymentId") or "")
        expected = self.sign(external_order_id, external_payment_id, data.get("success") is True)
        if not signatures_match(expected, data.get("signature")):
            logger.warning("Simulated gateway signature mismatch for %s", external_order_id or "<missing>")
            raise SignatureInvalid("Invalid simulated gateway signature")

    def extract_correlation(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        data = parse_json(body)
        kind = WebhookKind.COMPLETED if data.get("success") is True else WebhookKind.FAILED
        return WebhookEvent(
            kind=kind,
            correlation_id=data.get("externalOrderId"),
            external_payment_id=data.get("externalPaymentId"),
            signature=data.get("signature"),
            reason="" if kind == WebhookKind.COMPLETED else "Payment declined",
            payload=data,
        )
