"""
Purpose: Business rules for choosing which partners get an offer.
What it does:
Accepts an origin and a pool of partners, filters out ineligible partners,
and ranks the remaining ones by great-circle distance to the origin.
"""

from typing import List, Optional, Tuple

from routing.geofence import NearbyMatch, nearby

from .models import DeliveryPartner
from .policy import DispatchPolicy, default_dispatch_policy


def filter_eligible_partners(partners: List[DeliveryPartner]) -> List[DeliveryPartner]:
    """
    Returns only partners who are online and available.
    """
    eligible = []

    for partner in partners:
        if not partner.is_online:
            continue

        if not partner.is_available:
            continue

        eligible.append(partner)

    return eligible


def find_nearby_partners(
    origin: Tuple[float, float],
    partners: List[DeliveryPartner],
    policy: Optional[DispatchPolicy] = None,
) -> List[NearbyMatch[DeliveryPartner]]:
    """
    Eligible partners within the offer radius, closest first,
    capped to policy.max_offers.
    """
    policy = policy or default_dispatch_policy()

    eligible = filter_eligible_partners(partners)
    matches = nearby(origin, eligible, policy.offer_radius_km)

    return matches[:policy.max_offers]
