"""
Purpose: The one capability every payment provider implements.
What it does:
- create_intent(): open a checkout at the provider, return its correlation id
- verify_webhook(): authenticate a raw callback; raise SignatureInvalid before anything is parsed or stored
- extract_correlation(): read the callback into a provider-neutral WebhookEvent

The ledger and the webhook processor depend only on this interface.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from common.errors import ValidationError


class WebhookKind(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class GatewayIntent:
    external_order_id: str
    checkout: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WebhookEvent:
    kind: WebhookKind
    correlation_id: Optional[str] = None
    external_payment_id: Optional[str] = None
    signature: Optional[str] = None
    reason: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)


class PaymentGateway(ABC):
    name: str = ""

    @abstractmethod
    def create_intent(self, payment, order, customer_email: Optional[str] = None) -> GatewayIntent:
        ...

    @abstractmethod
    def verify_webhook(self, body: bytes, headers: Mapping[str, str]) -> None:
        ...

    @abstractmethod
    def extract_correlation(self, body: bytes, headers: Mapping[str, str]) -> WebhookEvent:
        ...


def header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), msg=message, digestmod=hashlib.sha256).hexdigest()


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received or not isinstance(received, str):
        return False
    return hmac.compare_digest(expected, received)


def parse_json(body: bytes) -> Dict[str, Any]:
    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise ValidationError("Webhook body is not valid JSON") from None
    if not isinstance(data, dict):
        raise ValidationError("Webhook body must be a JSON object")
    return data


def minor_units(amount: Decimal) -> int:
    """Rupees -> paise (cents)."""
    return int((Decimal(amount) * 100).to_integral_value())
