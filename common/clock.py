"""
Purpose: Single source of "now" for the domain services.
What it does:
Services accept a `clock` callable so tests can freeze or advance time.
Everything stored is timezone-aware UTC.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
