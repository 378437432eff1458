"""
Purpose: Central configuration for partner matching and offers.
What it does:

Stores all tunable thresholds/caps for finding partners and pushing offers:

OFFER_RADIUS_KM = 10
PULL_RADIUS_KM = 10
MAX_OFFERS = 10

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Central configuration for partner discovery and ETA estimates.
    """

    # --- Geofencing ---
    # Radius around the pickup (or delivery) point for push offers.
    offer_radius_km: float = 10.0

    # Default radius for a partner's "orders near me" query.
    pull_radius_km: float = 10.0

    # --- Broadcast caps ---
    # Closest N partners receive an offer, to prevent over-broadcasting.
    max_offers: int = 10

    # Orders returned to a partner when they come online.
    nearby_orders_on_online: int = 3

    # --- ETA ---
    # Used when OSRM is not configured or fails.
    average_speed_kmh: float = 25.0
    handling_minutes: int = 15
    # Used when either end has no coordinates.
    default_estimated_minutes: int = 60

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.offer_radius_km <= 0 or self.pull_radius_km <= 0:
            raise ValueError("radii must be > 0")

        if self.max_offers <= 0:
            raise ValueError("max_offers must be > 0")

        if self.average_speed_kmh <= 0:
            raise ValueError("average_speed_kmh must be > 0")

        if self.handling_minutes < 0 or self.default_estimated_minutes <= 0:
            raise ValueError("ETA minutes must be positive")


def default_dispatch_policy() -> DispatchPolicy:
    """
    Convenience factory for the default policy.
    """
    p = DispatchPolicy()
    p.validate()
    return p
