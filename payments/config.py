"""
Purpose: Gateway credentials and endpoints.
What it does:
Reads everything from the environment (a .env file is loaded first) so no
secret lives in code. Each gateway is only built when its credentials are set;
the simulated gateway is always available.

Example .env:
DEFAULT_PAYMENT_GATEWAY=razorpay
RAZORPAY_KEY_ID=rzp_test_xxx
RAZORPAY_KEY_SECRET=...
RAZORPAY_WEBHOOK_SECRET=...
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class GatewaySettings:
    default_gateway: str = "simulated"
    currency: str = "INR"

    simulated_secret: str = "simulated-gateway-secret"
    simulated_failure_rate: float = 0.0

    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_webhook_secret: Optional[str] = None

    paypal_client_id: Optional[str] = None
    paypal_client_secret: Optional[str] = None
    paypal_webhook_id: Optional[str] = None
    paypal_base_url: str = "https://api-m.sandbox.paypal.com"

    paynow_integration_id: Optional[str] = None
    paynow_integration_key: Optional[str] = None
    paynow_return_url: str = "http://localhost:8000/payments/return"
    paynow_result_url: str = "http://localhost:8000/api/v1/webhooks/paynow/"

    request_timeout: int = 10

    @classmethod
    def from_env(cls) -> GatewaySettings:
        defaults = cls()
        return cls(
            default_gateway=os.getenv("DEFAULT_PAYMENT_GATEWAY", defaults.default_gateway),
            currency=os.getenv("PAYMENT_CURRENCY", defaults.currency),
            simulated_secret=os.getenv("SIMULATED_GATEWAY_SECRET", defaults.simulated_secret),
            simulated_failure_rate=float(os.getenv("SIMULATED_GATEWAY_FAILURE_RATE", defaults.simulated_failure_rate)),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID"),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET"),
            razorpay_webhook_secret=os.getenv("RAZORPAY_WEBHOOK_SECRET"),
            paypal_client_id=os.getenv("PAYPAL_CLIENT_ID"),
            paypal_client_secret=os.getenv("PAYPAL_CLIENT_SECRET"),
            paypal_webhook_id=os.getenv("PAYPAL_WEBHOOK_ID"),
            paypal_base_url=os.getenv("PAYPAL_BASE_URL", defaults.paypal_base_url),
            paynow_integration_id=os.getenv("PAYNOW_INTEGRATION_ID"),
            paynow_integration_key=os.getenv("PAYNOW_INTEGRATION_KEY"),
            paynow_return_url=os.getenv("PAYNOW_RETURN_URL", defaults.paynow_return_url),
            paynow_result_url=os.getenv("PAYNOW_RESULT_URL", defaults.paynow_result_url),
            request_timeout=int(os.getenv("PAYMENT_REQUEST_TIMEOUT", defaults.request_timeout)),
        )
