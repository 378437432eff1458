"""
Purpose: PayPal Orders v2.
What it does:
- create_intent(): OAuth client-credentials token, then POST /v2/checkout/orders (intent CAPTURE)
- capture_order(): capture an approved order (the client calls this after buyer approval)
- verify_webhook(): asks PayPal itself via /v1/notifications/verify-webhook-signature
- extract_correlation(): PAYMENT.CAPTURE.COMPLETED / PAYMENT.CAPTURE.DENIED

PayPal has no shared-secret signature, so verification is a network call.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

import requests

from common.errors import GatewayUnavailable, SignatureInvalid

from .base import GatewayIntent, PaymentGateway, WebhookEvent, WebhookKind, header, parse_json

logger = logging.getLogger(__name__)

_VERIFY_HEADERS = {
    "auth_algo": "PAYPAL-AUTH-ALGO",
    "cert_url": "PAYPAL-CERT-URL",
    "transmission_id": "PAYPAL-TRANSMISSION-ID",
    "transmission_sig": "PAYPAL-TRANSMISSION-SIG",
    "transmission_time": "PAYPAL-TRANSMISSION-TIME",
}


class PayPalGateway(PaymentGateway):
    name = "paypal"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        webhook_id: str,
        base_url: str = "https://api-m.sandbox.paypal.com",
        timeout: int = 10,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.webhook_id = webhook_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _access_token(self) -> str:
        url = f"{self.base_url}/v1/oauth2/token"
        try:
            r = requests.post(
                url,
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout,
            )
            r.raise_for_status()
            return r.json()["access_token"]
        except (requests.RequestException, ValueError, KeyError) as exc:
            logger.error("PayPal token request failed: %s", exc)
            raise GatewayUnavailable(f"PayPal authentication failed: {exc}") from exc

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        token = self._access_token()
        try:
            r = requests.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("PayPal request %s failed: %s", path, exc)
            raise GatewayUnavailable(f"PayPal request failed: {exc}") from exc

    def create_intent(self, payment, order, customer_email: Optional[str] = None) -> GatewayIntent:
        body = self._post("/v2/checkout/orders", {
            "intent": "CAPTURE",
            "purchase_units": [{
                "reference_id": order.id,
                "custom_id": payment.transaction_id,
                "amount": {"currency_code": payment.currency, "value": str(payment.amount)},
            }],
        })
        approve = next((link["href"] for link in body.get("links", []) if link.get("rel") == "approve"), None)
        return GatewayIntent(external_order_id=body["id"], checkout={"paypalOrderId": body["id"], "approveUrl": approve})

    def capture_order(self, external_order_id: str) -> Dict[str, Any]:
        return self._post(f"/v2/checkout/orders/{external_order_id}/capture", {})

    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        fields = {key: header(headers, name) for key, name in _VERIFY_HEADERS.items()}
        if not all(fields.values()):
            raise SignatureInvalid("Missing PayPal transmission headers")
        try:
            event = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise SignatureInvalid("PayPal webhook body is not valid JSON") from None

        result = self._post("/v1/notifications/verify-webhook-signature", {
            **fields,
            "webhook_id": self.webhook_id,
            "webhook_event": event,
        })
        if result.get("verification_status") != "SUCCESS":
            logger.warning("PayPal signature verification returned %s", result.get("verification_status"))
            raise SignatureInvalid("Invalid PayPal signature")

    def extract_correlation(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        data = parse_json(body)
        event_type = data.get("event_type")
        if event_type == "PAYMENT.CAPTURE.COMPLETED":
            kind = WebhookKind.COMPLETED
        elif event_type == "PAYMENT.CAPTURE.DENIED":
            kind = WebhookKind.FAILED
        else:
            return WebhookEvent(kind=WebhookKind.IGNORED, payload=data)

        resource = data.get("resource") or {}
        related = (resource.get("supplementary_data") or {}).get("related_ids") or {}
        return WebhookEvent(
            kind=kind,
            correlation_id=related.get("order_id"),
            external_payment_id=resource.get("id"),
            signature=header(headers, "PAYPAL-TRANSMISSION-SIG"),
            reason="Capture denied" if kind == WebhookKind.FAILED else "",
            payload=data,
        )
