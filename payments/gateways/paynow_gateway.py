"""
Purpose: Paynow (Zimbabwe) through the paynow SDK.
What it does:
- create_intent(): create_payment(reference=transaction id), one line for the order total, send()
- verify_webhook(): the status update is form-encoded; its hash is SHA512 (uppercase hex)
  over every posted value except "hash", in order, followed by the integration key
- extract_correlation(): status Paid -> completed, Cancelled/Failed -> failed, correlated by reference
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Dict, Mapping, Optional
from urllib.parse import parse_qsl

import requests
from paynow import Paynow

from common.errors import GatewayUnavailable, SignatureInvalid, ValidationError

from .base import GatewayIntent, PaymentGateway, WebhookEvent, WebhookKind

logger = logging.getLogger(__name__)

FAILED_STATUSES = frozenset({"cancelled", "failed", "disputed"})


def paynow_hash(values: Dict[str, str], integration_key: str) -> str:
    joined = "".join(value for key, value in values.items() if key.lower() != "hash")
    return hashlib.sha512((joined + integration_key).encode("utf-8")).hexdigest().upper()


class PaynowGateway(PaymentGateway):
    name = "paynow"

    def __init__(self, integration_id: str, integration_key: str, return_url: str, result_url: str):
        self.integration_key = integration_key
        self.paynow = Paynow(integration_id, integration_key, return_url, result_url)

    @staticmethod
    def _form(body: bytes) -> Dict[str, str]:
        try:
            return dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True))
        except UnicodeDecodeError:
            raise ValidationError("Paynow status update is not valid form data") from None

    def create_intent(self, payment, order, customer_email: Optional[str] = None) -> GatewayIntent:
        checkout = self.paynow.create_payment(payment.transaction_id, customer_email or "")
        checkout.add(f"Order {order.order_number}", float(payment.amount))
        try:
            response = self.paynow.send(checkout)
        except requests.RequestException as exc:
            logger.error("Paynow send failed for order %s: %s", order.id, exc)
            raise GatewayUnavailable(f"Paynow request failed: {exc}") from exc

        if not response.success:
            logger.error("Paynow rejected order %s: %s", order.id, getattr(response, "error", ""))
            raise GatewayUnavailable(f"Paynow rejected the payment: {getattr(response, 'error', 'unknown error')}")

        return GatewayIntent(
            external_order_id=payment.transaction_id,
            checkout={"redirectUrl": response.redirect_url, "pollUrl": response.poll_url},
        )

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        values = self._form(body)
        received = values.get("hash", "")
        expected = paynow_hash(values, self.integration_key)
        if not received or not hmac.compare_digest(expected, received.upper()):
            logger.warning("Paynow hash mismatch for reference %s", values.get("reference", "<missing>"))
            raise SignatureInvalid("Invalid Paynow hash")

    def extract_correlation(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        values = self._form(body)
        status = values.get("status", "").lower()
        if status == "paid":
            kind = WebhookKind.COMPLETED
        elif status in FAILED_STATUSES:
            kind = WebhookKind.FAILED
        else:
            return WebhookEvent(kind=WebhookKind.IGNORED, payload=dict(values))

        return WebhookEvent(
            kind=kind,
            correlation_id=values.get("reference"),
            external_payment_id=values.get("paynowreference"),
            signature=values.get("hash"),
            reason=f"Paynow status {values.get('status')}" if kind == WebhookKind.FAILED else "",
            payload=dict(values),
        )
