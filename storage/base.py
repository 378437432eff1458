"""
Purpose: The backing-store contract every domain service writes through.
What it does:
- Defines versioned records and the four primitives a store must provide:
  insert (fails on duplicate key), get, find (equality / `__in` criteria) and
  compare_and_set on the record version.
- Builds the optimistic update loop on top of compare_and_set:
  read snapshot -> mutate (re-checking the precondition) -> conditional write -> retry.

Rule: No in-process locks in the services. All coordination between actors
goes through compare_and_set so it holds across replicas.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Callable, Generic, List, Optional, TypeVar

from common.errors import ConcurrentUpdateError, DuplicateRecord, RecordNotFound

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Collection names
ORDERS = "orders"
PAYMENTS = "payments"
DELIVERIES = "deliveries"
PARTNERS = "partners"
PRODUCTS = "products"
PRODUCERS = "producers"
COUNTERS = "counters"

# Returned by a mutate function to skip the write.
UNCHANGED = object()


@dataclass(frozen=True)
class Versioned(Generic[T]):
    """A record as read from the store, with the version a CAS must match."""
    record: T
    version: int


@dataclass(frozen=True)
class Counter:
    value: int = 0


class Store(ABC):
    """
    Minimal document store with optimistic concurrency.
    Records are dataclasses; each write bumps the version by one.
    """

    max_update_attempts: int = 25

    @abstractmethod
    def insert(self, collection: str, key: str, record: Any) -> Versioned:
        """Create a record at version 1. Raises DuplicateRecord if the key exists."""

    @abstractmethod
    def get(self, collection: str, key: str) -> Optional[Versioned]:
        """Return the current snapshot or None."""

    @abstractmethod
    def find(self, collection: str, **criteria: Any) -> List[Versioned]:
        """
        Return records matching every criterion, in insertion order.
        `field=value` tests equality, `field__in=[...]` membership, and
        `outer__inner=value` walks into nested records.
        """

    @abstractmethod
    def compare_and_set(self, collection: str, key: str, expected_version: int, record: Any) -> bool:
        """Write `record` only if the stored version is still `expected_version`."""

    # ----------------
    # Built on the primitives
    # ----------------
    def require(self, collection: str, key: str) -> Versioned:
        current = self.get(collection, key)
        if current is None:
            raise RecordNotFound(f"{collection}/{key} not found")
        return current

    def find_one(self, collection: str, **criteria: Any) -> Optional[Versioned]:
        matches = self.find(collection, **criteria)
        return matches[0] if matches else None

    def update(self, collection: str, key: str, mutate: Callable[[Any], Any]) -> Versioned:
        """
        Optimistic read-check-write loop.

        `mutate` receives a private copy of the record and returns the new record
        (or UNCHANGED to skip the write). It must re-check its precondition every
        time it runs and raise a domain error when the precondition no longer holds;
        after a lost race the loop re-reads and calls it again.
        """
        for _ in range(self.max_update_attempts):
            current = self.require(collection, key)
            updated = mutate(copy.deepcopy(current.record))
            if updated is UNCHANGED:
                return current
            if self.compare_and_set(collection, key, current.version, updated):
                return Versioned(updated, current.version + 1)
            logger.debug("Version conflict on %s/%s at v%s, retrying", collection, key, current.version)

        raise ConcurrentUpdateError(
            f"Gave up updating {collection}/{key} after {self.max_update_attempts} attempts"
        )

    def insert_if_missing(self, collection: str, key: str, record: Any) -> Versioned:
        """Insert, or return whatever a concurrent writer inserted first."""
        existing = self.get(collection, key)
        if existing is not None:
            return existing
        try:
            return self.insert(collection, key, record)
        except DuplicateRecord:
            return self.require(collection, key)

    def next_sequence(self, name: str) -> int:
        """Atomic counter; returns 1, 2, 3... per name."""
        self.insert_if_missing(COUNTERS, name, Counter())
        bumped = self.update(COUNTERS, name, lambda counter: replace(counter, value=counter.value + 1))
        return bumped.record.value
