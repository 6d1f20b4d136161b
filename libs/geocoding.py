"""
Reverse geocoding through the OpenStreetMap Nominatim API.

Used when sharing a location so the map and family list can show a street
address instead of raw coordinates. Any failure degrades to
``UNKNOWN_LOCATION``; a missing address never blocks a location update.
"""

import logging
from typing import Optional

import httpx
from httpx import Timeout

from libs.config import config

logger = logging.getLogger(__name__)

UNKNOWN_LOCATION = "Unknown location"


class NominatimGeocoder:
    """Client for the Nominatim /reverse endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the geocoder.

        Args:
            base_url: Nominatim base URL. Defaults to NOMINATIM_URL.
            user_agent: User-Agent header, required by the Nominatim usage policy.
            http_client: Pre-built httpx client (tests pass one with a MockTransport).
        """
        self.client = http_client or httpx.Client(
            base_url=base_url or config.NOMINATIM_URL,
            timeout=Timeout(10.0),
        )
        self.headers = {
            "Accept-Language": "en-US,en",
            "User-Agent": user_agent or config.NOMINATIM_USER_AGENT,
        }

    def close(self):
        self.client.close()

    def reverse(self, latitude: str, longitude: str) -> str:
        """
        Convert coordinates to a display address.

        Returns:
            The formatted address, or ``UNKNOWN_LOCATION`` on any error
        """
        params = {
            "format": "json",
            "lat": latitude,
            "lon": longitude,
            "zoom": 18,
            "addressdetails": 1,
        }
        try:
            response = self.client.get("/reverse", params=params, headers=self.headers)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("Nominatim API error: %s", e.response.status_code)
            return UNKNOWN_LOCATION
        except httpx.RequestError as e:
            logger.error("Nominatim request error: %s", e)
            return UNKNOWN_LOCATION
        except ValueError as e:
            logger.error("Nominatim returned invalid JSON: %s", e)
            return UNKNOWN_LOCATION

        if not isinstance(data, dict) or not data.get("display_name"):
            return UNKNOWN_LOCATION
        return data["display_name"]
