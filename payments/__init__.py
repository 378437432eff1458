"""
Purpose: Package entry + stable exports.
What it does:

from payments import Payment, PaymentStatus

The ledger (payments.ledger.PaymentLedger), the webhook processor
(payments.webhooks.WebhookProcessor) and the gateways (payments.gateways)
are imported from their modules directly.
"""
from .models import (
    PAYMENT_TRANSITIONS,
    GatewayRef,
    Payment,
    PaymentHistoryEntry,
    PaymentMethod,
    PaymentStatus,
    new_transaction_id,
)

__all__ = [
    "PAYMENT_TRANSITIONS",
    "GatewayRef",
    "Payment",
    "PaymentHistoryEntry",
    "PaymentMethod",
    "PaymentStatus",
    "new_transaction_id",
]
