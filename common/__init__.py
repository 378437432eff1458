#Marks common as a package.
#Shared error taxonomy and the clock helper used by every domain package.
#No business logic.

from .clock import utcnow
from .errors import (
    AlreadyAssigned,
    AuthorizationError,
    ConcurrentUpdateError,
    DuplicatePayment,
    DuplicateRecord,
    GatewayUnavailable,
    IllegalTransition,
    InsufficientQuantity,
    MarketplaceError,
    NotAssignedAgent,
    RecordNotFound,
    SignatureInvalid,
    ValidationError,
)

__all__ = [
    "utcnow",
    "AlreadyAssigned",
    "AuthorizationError",
    "ConcurrentUpdateError",
    "DuplicatePayment",
    "DuplicateRecord",
    "GatewayUnavailable",
    "IllegalTransition",
    "InsufficientQuantity",
    "MarketplaceError",
    "NotAssignedAgent",
    "RecordNotFound",
    "SignatureInvalid",
    "ValidationError",
]
