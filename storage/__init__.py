#Marks storage as a package.
#Re-exports the Store contract, the in-memory implementation and collection names.

from .base import (
    COUNTERS,
    DELIVERIES,
    ORDERS,
    PARTNERS,
    PAYMENTS,
    PRODUCERS,
    PRODUCTS,
    UNCHANGED,
    Counter,
    Store,
    Versioned,
)
from .memory import InMemoryStore

__all__ = [
    "COUNTERS",
    "DELIVERIES",
    "ORDERS",
    "PARTNERS",
    "PAYMENTS",
    "PRODUCERS",
    "PRODUCTS",
    "UNCHANGED",
    "Counter",
    "Store",
    "Versioned",
    "InMemoryStore",
]
