"""
Purpose: In-memory Store for single-process runs, simulations and tests.
What it does:
Keeps private deep copies of every record with a version number. The only lock
is the one around each primitive, standing in for the atomicity a real
database gives a single conditional UPDATE.
"""

from __future__ import annotations

import copy
import threading
from dataclasses import dataclass, field, is_dataclass
from typing import Any, Dict, List, Optional, Tuple

from common.errors import DuplicateRecord

from .base import Store, Versioned

_MISSING = object()


def _resolve(record: Any, path: List[str]) -> Any:
    value = record
    for part in path:
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part, _MISSING)
        elif is_dataclass(value):
            value = getattr(value, part, _MISSING)
        else:
            return _MISSING
        if value is _MISSING:
            return _MISSING
    return value


def matches(record: Any, criteria: Dict[str, Any]) -> bool:
    for lookup, expected in criteria.items():
        path = lookup.split("__")
        if path[-1] == "in":
            value = _resolve(record, path[:-1])
            if value is _MISSING or value not in expected:
                return False
        else:
            value = _resolve(record, path)
            if value is _MISSING or value != expected:
                return False
    return True


@dataclass
class InMemoryStore(Store):
    _collections: Dict[str, Dict[str, Tuple[Any, int]]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def insert(self, collection: str, key: str, record: Any) -> Versioned:
        with self._lock:
            records = self._collections.setdefault(collection, {})
            if key in records:
                raise DuplicateRecord(f"{collection}/{key} already exists")
            records[key] = (copy.deepcopy(record), 1)
        return Versioned(copy.deepcopy(record), 1)

    def get(self, collection: str, key: str) -> Optional[Versioned]:
        with self._lock:
            entry = self._collections.get(collection, {}).get(key)
            if entry is None:
                return None
            record, version = entry
            return Versioned(copy.deepcopy(record), version)

    def find(self, collection: str, **criteria: Any) -> List[Versioned]:
        with self._lock:
            entries = list(self._collections.get(collection, {}).values())
            return [
                Versioned(copy.deepcopy(record), version)
                for record, version in entries
                if matches(record, criteria)
            ]

    def compare_and_set(self, collection: str, key: str, expected_version: int, record: Any) -> bool:
        with self._lock:
            records = self._collections.get(collection, {})
            entry = records.get(key)
            if entry is None or entry[1] != expected_version:
                return False
            records[key] = (copy.deepcopy(record), expected_version + 1)
            return True
