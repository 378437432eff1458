#Purpose: Radius geofencing on great-circle distance.
#Given an origin point + a candidate set (partners or orders) -> distance to each.
#Typical responsibilities:
#Skip candidates with no known location (fail closed, never raise)
#Apply the radius threshold
#Sort by distance, ties keep their input order
#Output: a list of "geo-qualified" matches with distance in km.
#Pure functions only: no store, no OSRM.

from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterable, List, Optional, Tuple, TypeVar
import math

#internal coordinate type :(lat,lon)
LatLon = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0

T = TypeVar("T")


@dataclass(frozen=True)
class NearbyMatch(Generic[T]):
    """
    One geo-qualified candidate and its distance to the origin.
    This is what the dispatch layer consumes.
    """
    item: T
    distance_km: float


def haversine_km(origin: LatLon, destination: LatLon) -> float:
    """Great-circle distance between two (lat, lon) points on a spherical earth."""
    lat1, lon1 = origin
    lat2, lon2 = destination

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _default_location(candidate: Any) -> Optional[LatLon]:
    return getattr(candidate, "location", None)


def nearby(
        origin: LatLon,
        candidates: Iterable[T],
        radius_km: float,
        *,
        location: Callable[[T], Optional[LatLon]] = _default_location,
) -> List[NearbyMatch[T]]:
    """
    Radius filter + distance sort.

    Args:
        origin: (lat, lon) the distances are measured from
        candidates: anything; `location` extracts its (lat, lon) or None
        radius_km: inclusive radius in kilometres
        location: accessor, defaults to the candidate's `.location` attribute

    Returns:
        List[NearbyMatch] sorted by distance_km ascending. Equal distances keep input order.
    """
    if radius_km < 0:
        raise ValueError("radius_km must be >= 0")

    matches: List[NearbyMatch[T]] = []
    for candidate in candidates:
        point = location(candidate)
        #no location known -> not a candidate
        if point is None:
            continue
        distance = haversine_km(origin, point)
        if distance <= radius_km:
            matches.append(NearbyMatch(item=candidate, distance_km=distance))

    #list.sort is stable, so ties keep the order they came in
    matches.sort(key=lambda match: match.distance_km)
    return matches
