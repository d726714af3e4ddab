# =============================================================================
# soap_core/data/geocoding.py
# Address geocoding for supermarkets (OpenStreetMap Nominatim)
# =============================================================================

from __future__ import annotations
from typing import Optional, Tuple
import logging

import requests

from soap_core.errors import error_boundary

logger = logging.getLogger(__name__)

Coordinates = Tuple[float, float]

# Algiers city centre, used whenever an address cannot be resolved
DEFAULT_COORDINATES: Coordinates = (36.7538, 3.0588)


class Geocoder:
    """
    Resolve a street address to (latitude, longitude).

    The lookup is bounded by ``timeout`` and never raises: any failure
    yields DEFAULT_COORDINATES.
    """

    BASE_URL = "https://nominatim.openstreetmap.org/search"

    def __init__(
        self,
        timeout: float = 5.0,
        user_agent: str = "soap-stock-dashboard/1.0",
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.session = session or requests.Session()
        # Nominatim rejects requests without an identifying User-Agent
        self.session.headers.update({"User-Agent": user_agent})

    def geocode(self, address: str) -> Coordinates:
        if not address or not address.strip():
            return DEFAULT_COORDINATES
        coordinates = self._lookup(address.strip())
        return coordinates or DEFAULT_COORDINATES

    @error_boundary(default_return=None, error_message="Geocoding failed")
    def _lookup(self, address: str) -> Optional[Coordinates]:
        response = self.session.get(
            self.BASE_URL,
            params={"format": "json", "q": address, "limit": 1},
            timeout=self.timeout,
        )
        response.raise_for_status()
        results = response.json()
        if not results:
            logger.info(f"No geocoding result for '{address}'")
            return None
        return float(results[0]["lat"]), float(results[0]["lon"])
