#Purpose: The OSRM "adapter/client".
#Sole responsibility: talk to OSRM via HTTP and return normalized outputs.
#Encapsulates OSRM-specific details:
#coordinate formatting (lon,lat)
#URL construction (/route)
#timeouts and error handling
#parsing response JSON into your internal shape
#It should not contain dispatch rules or ETA policy.


from dotenv import load_dotenv
import os
from typing import Dict, List, Optional, Tuple
import requests

# Read OSRM base URL from environment
# Example in .env:
# OSRM_BASE_URL=http://router.project-osrm.org
load_dotenv()

# Internal coordinate type: (lat, lon)
LatLon = Tuple[float, float]


class OSRMError(Exception):
    """Raised when OSRM cannot be reached or cannot route."""
    pass


class OSRMClient:
    """
    OSRM Adapter / Client

    Sole responsibility:
    - Talk to OSRM via HTTP
    - Convert internal (lat, lon) -> OSRM (lon,lat)
    - Return normalized outputs
    """
    def __init__(self, base_url: Optional[str] = None, profile: str = "driving", timeout: int = 5):
        self.base_url = base_url or os.getenv("OSRM_BASE_URL")
        self.timeout = timeout  # seconds to wait for OSRM before giving up
        self.profile = profile  # driving, walking, cycling

        if not self.base_url:
            raise ValueError("OSRM base URL not set. Set OSRM_BASE_URL in the .env file.")

    @classmethod
    def from_env(cls) -> Optional["OSRMClient"]:
        """Returns a client when OSRM_BASE_URL is configured, otherwise None."""
        if not os.getenv("OSRM_BASE_URL"):
            return None
        return cls()

    def format_coordinates(self, coords: List[LatLon]) -> str:
        """Convert list of (lat, lon) to OSRM format 'lon,lat;lon,lat;...'"""
        return ';'.join([f"{lon},{lat}" for lat, lon in coords])

    def compute_route(self, coordinates: List[LatLon]) -> Dict[str, float]:
        """
        Calls the OSRM /route endpoint with the given coordinates.

        Returns:
            {
                "distance": float, # in meters
                "duration": float, # in seconds
            }
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required to compute a route.")

        url = f"{self.base_url}/route/v1/{self.profile}/{self.format_coordinates(coordinates)}"

        try:
            response = requests.get(
                url,
                params={"overview": "false"},  # geometry is not needed
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise OSRMError(f"OSRM request failed: {exc}") from exc

        if data.get("code") != "Ok":
            raise OSRMError(f"OSRM error: {data.get('message', 'Unknown error')}")

        route = data["routes"][0]  # first route is the recommended one

        return {
            "distance": route["distance"],
            "duration": route["duration"],
        }
