"""
Purpose: Central configuration for order pricing.
What it does:

Stores the charges added on top of the line items:

DELIVERY_FEE = 0.00
TAX_RATE = 0.00  (fraction of subtotal)
CURRENCY = INR

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class PricingPolicy:
    """
    Charges applied when an order is created.
    """

    # Flat fee per order
    delivery_fee: Decimal = Decimal("0.00")

    # Fraction of the subtotal, e.g. Decimal("0.05") for 5%
    tax_rate: Decimal = Decimal("0.00")

    currency: str = "INR"

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.delivery_fee < 0:
            raise ValueError("delivery_fee must be >= 0")

        if not (Decimal("0") <= self.tax_rate < Decimal("1")):
            raise ValueError("tax_rate must be in [0, 1)")

        if len(self.currency) != 3:
            raise ValueError("currency must be an ISO 4217 code")


def default_pricing_policy() -> PricingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = PricingPolicy()
    p.validate()
    return p
