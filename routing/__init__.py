#Marks routing as a package.
#Re-exports clean public APIs (haversine_km, nearby, EtaEstimator, OSRMClient)
#so other modules import from routing without knowing internal file names.
#No business logic.

from .eta_service import EtaEstimator
from .geofence import LatLon, NearbyMatch, haversine_km, nearby
from .osrm_client import OSRMClient, OSRMError

__all__ = [
    "EtaEstimator",
    "LatLon",
    "NearbyMatch",
    "haversine_km",
    "nearby",
    "OSRMClient",
    "OSRMError",
]
