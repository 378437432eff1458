#Purpose: ETA estimation policy.
#Converts routing outputs into the delivery duration estimate stored when a
#partner accepts an order (Delivery.estimated_duration, Order.estimated_delivery_time).
#Typical responsibilities:
#Road ETA from OSRM when a client is configured
#Great-circle fallback at an average speed when OSRM is absent or failing
#Add a fixed handling buffer (loading at the farm, handover at the door)
#Keeps ETA logic separate from route computation.

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from routing.geofence import haversine_km
from routing.osrm_client import OSRMClient, OSRMError

logger = logging.getLogger(__name__)

LatLon = Tuple[float, float]


@dataclass
class EtaEstimator:
    """
    Estimates pickup -> dropoff minutes.
    """
    osrm: Optional[OSRMClient] = None
    average_speed_kmh: float = 25.0
    handling_minutes: int = 15
    default_minutes: int = 60

    def estimate_minutes(self, pickup: Optional[LatLon], dropoff: Optional[LatLon]) -> int:
        if pickup is None or dropoff is None:
            return self.default_minutes

        travel_minutes = None
        if self.osrm is not None:
            try:
                route = self.osrm.compute_route([pickup, dropoff])
                travel_minutes = route["duration"] / 60.0
            except OSRMError as exc:
                logger.warning("OSRM unavailable, falling back to great-circle ETA: %s", exc)

        if travel_minutes is None:
            travel_minutes = haversine_km(pickup, dropoff) / self.average_speed_kmh * 60.0

        return int(math.ceil(travel_minutes)) + self.handling_minutes
