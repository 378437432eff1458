"""
Purpose: Record <-> JSON document conversion for stores that persist JSON.
What it does:
- to_document(): a record as JSON-ready types (enums by value, Decimal as
  string, datetimes ISO 8601, tuples as lists), via pydantic.
- from_document(): validates a stored body back into its record type.
- to_json_value(): a single value as it appears inside a document, used to
  build lookups on stored bodies.

One pydantic TypeAdapter is built per record type and reused.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, Type, TypeVar

from pydantic import TypeAdapter
from pydantic_core import to_jsonable_python

R = TypeVar("R")


@lru_cache(maxsize=None)
def adapter_for(record_type: type) -> TypeAdapter:
    return TypeAdapter(record_type)


def to_document(record: Any) -> Dict[str, Any]:
    return adapter_for(type(record)).dump_python(record, mode="json")


def from_document(record_type: Type[R], body: Dict[str, Any]) -> R:
    return adapter_for(record_type).validate_python(body)


def to_json_value(value: Any) -> Any:
    return to_jsonable_python(value)
