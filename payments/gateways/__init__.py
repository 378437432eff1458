"""
Purpose: Gateway registry.
What it does:
build_gateways() turns GatewaySettings into {name: PaymentGateway}. The simulated
gateway is always present; the others only when their credentials are configured.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from payments.config import GatewaySettings

from .base import GatewayIntent, PaymentGateway, WebhookEvent, WebhookKind
from .paynow_gateway import PaynowGateway
from .paypal_gateway import PayPalGateway
from .razorpay_gateway import RazorpayGateway
from .simulated import SimulatedGateway
from .stripe_gateway import StripeGateway

logger = logging.getLogger(__name__)

__all__ = [
    "GatewayIntent",
    "PaymentGateway",
    "WebhookEvent",
    "WebhookKind",
    "PaynowGateway",
    "PayPalGateway",
    "RazorpayGateway",
    "SimulatedGateway",
    "StripeGateway",
    "build_gateways",
]


def build_gateways(settings: Optional[GatewaySettings] = None) -> Dict[str, PaymentGateway]:
    settings = settings or GatewaySettings.from_env()
    gateways: Dict[str, PaymentGateway] = {
        "simulated": SimulatedGateway(settings.simulated_secret, failure_rate=settings.simulated_failure_rate),
    }

    if settings.stripe_secret_key and settings.stripe_webhook_secret:
        gateways["stripe"] = StripeGateway(
            settings.stripe_secret_key, settings.stripe_webhook_secret, timeout=settings.request_timeout
        )
    if settings.razorpay_key_id and settings.razorpay_key_secret and settings.razorpay_webhook_secret:
        gateways["razorpay"] = RazorpayGateway(
            settings.razorpay_key_id,
            settings.razorpay_key_secret,
            settings.razorpay_webhook_secret,
            timeout=settings.request_timeout,
        )
    if settings.paypal_client_id and settings.paypal_client_secret and settings.paypal_webhook_id:
        gateways["paypal"] = PayPalGateway(
            settings.paypal_client_id,
            settings.paypal_client_secret,
            settings.paypal_webhook_id,
            base_url=settings.paypal_base_url,
            timeout=settings.request_timeout,
        )
    if settings.paynow_integration_id and settings.paynow_integration_key:
        gateways["paynow"] = PaynowGateway(
            settings.paynow_integration_id,
            settings.paynow_integration_key,
            settings.paynow_return_url,
            settings.paynow_result_url,
        )

    logger.info("Payment gateways configured: %s", ", ".join(sorted(gateways)))
    return gateways
