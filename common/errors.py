"""
Purpose: Error taxonomy shared by orders, dispatch, deliveries and payments.
What it does:
Every failure a caller can see is one of these. They are raised synchronously
to the immediate caller and never change state. The HTTP layer maps them to
status codes in backend/logistics/exceptions.py.
"""

from __future__ import annotations

from typing import Optional


class MarketplaceError(Exception):
    """Base class for all domain errors."""
    code = "error"
    retryable = False


class ValidationError(MarketplaceError):
    """Raised when caller input is malformed."""
    code = "validation_error"


class AuthorizationError(MarketplaceError):
    """Raised when the actor has the wrong role or is not a party to the record."""
    code = "not_authorized"


class IllegalTransition(MarketplaceError):
    """Raised when a status edge is not in the transition table for the actor's role."""
    code = "illegal_transition"

    def __init__(self, current, target, role=None, message: Optional[str] = None):
        self.current = getattr(current, "value", current)
        self.target = getattr(target, "value", target)
        self.role = getattr(role, "value", role)
        if message is None:
            message = f"Cannot move from '{self.current}' to '{self.target}'"
            if self.role:
                message += f" as {self.role}"
        super().__init__(message)


class NotAssignedAgent(MarketplaceError):
    """Raised when a delivery partner acts on an order assigned to someone else."""
    code = "not_assigned_agent"


class AlreadyAssigned(MarketplaceError):
    """Raised to the losers of the accept race. Re-poll available orders and retry."""
    code = "already_assigned"
    retryable = True


class SignatureInvalid(MarketplaceError):
    """Raised when a webhook signature does not verify."""
    code = "signature_invalid"


class GatewayUnavailable(MarketplaceError):
    """Raised when a payment gateway cannot be reached or refuses the request."""
    code = "gateway_unavailable"
    retryable = True


class InsufficientQuantity(MarketplaceError):
    """Raised when a product does not have enough stock for a line item."""
    code = "insufficient_quantity"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient quantity for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class DuplicatePayment(MarketplaceError):
    """Raised when a payment already exists for the order."""
    code = "duplicate_payment"


class RecordNotFound(MarketplaceError):
    """Raised when a record is missing from the store."""
    code = "not_found"


class DuplicateRecord(MarketplaceError):
    """Raised by Store.insert when the key is already taken."""
    code = "duplicate_record"


class ConcurrentUpdateError(MarketplaceError):
    """Raised when a compare-and-set loop keeps losing and gives up."""
    code = "concurrent_update"
    retryable = True
