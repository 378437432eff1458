"""
Purpose: Gateway callback handling.
What it does:
1. Verify the signature (SignatureInvalid propagates; nothing has been touched yet)
2. Extract the provider-neutral event
3. Call the matching idempotent ledger operation
4. Acknowledge, even when no payment matched, so the gateway stops retrying
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from common.errors import RecordNotFound

from .gateways.base import PaymentGateway, WebhookKind
from .ledger import PaymentLedger
from .models import Payment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookResult:
    acknowledged: bool
    kind: WebhookKind
    matched: bool
    payment: Optional[Payment] = None


class WebhookProcessor:
    def __init__(self, ledger: PaymentLedger, gateways: Optional[Mapping[str, PaymentGateway]] = None):
        self.ledger = ledger
        self.gateways = dict(gateways) if gateways is not None else ledger.gateways

    def handle(self, gateway_name: str, body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        gateway = self.gateways.get(gateway_name)
        if gateway is None:
            raise RecordNotFound(f"Unknown payment gateway '{gateway_name}'")

        gateway.verify_webhook(body, headers)
        event = gateway.extract_correlation(body, headers)

        if event.kind == WebhookKind.IGNORED:
            logger.debug("Ignoring %s webhook without a payment outcome", gateway_name)
            return WebhookResult(acknowledged=True, kind=event.kind, matched=False)

        if event.kind == WebhookKind.COMPLETED:
            payment = self.ledger.mark_completed(
                event.correlation_id,
                event.external_payment_id,
                event.payload,
                signature=event.signature,
            )
        else:
            payment = self.ledger.mark_failed(event.correlation_id, event.reason, event.payload)

        return WebhookResult(acknowledged=True, kind=event.kind, matched=payment is not None, payment=payment)
