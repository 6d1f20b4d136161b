"""
Client data-fetching layer for the Family Connect API.

Reads are cached per request path the first time they are fetched. Every
mutation drops the cache entries it makes stale, so the next read goes
back to the server. Logging in or out clears the whole cache.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from httpx import Timeout
from pydantic import BaseModel

from libs.config import config
from libs.geocoding import NominatimGeocoder
from models.family_models import (
    CheckIn,
    FamilyCheckIn,
    FamilyMember,
    Location,
    PublicUser,
    StatusUpdate,
)

logger = logging.getLogger(__name__)


class FamilyConnectAPIError(Exception):
    """Non-2xx response from the API."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class Dashboard(BaseModel):
    """Everything the home page shows."""

    user: PublicUser
    status: Optional[StatusUpdate] = None
    location: Optional[Location] = None
    family: List[FamilyMember] = []
    family_check_ins: List[FamilyCheckIn] = []


class FamilyConnectClient:
    """Session-cookie client with a cache-on-fetch read layer."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 10.0,
    ):
        """
        Args:
            base_url: API root. Defaults to FAMILY_CONNECT_URL.
            http_client: Pre-built client, e.g. a FastAPI TestClient.
            transport: Custom transport for a client built here.
            timeout: Request timeout in seconds.
        """
        self.client = http_client or httpx.Client(
            base_url=base_url or config.FAMILY_CONNECT_URL,
            transport=transport,
            timeout=Timeout(timeout),
        )
        self._cache: Dict[str, Any] = {}

    def close(self):
        self.client.close()

    # ========= Transport =========

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self.client.request(method, path, **kwargs)
        if response.status_code >= 400:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise FamilyConnectAPIError(response.status_code, message)
        return response

    @staticmethod
    def _key(path: str, params: Optional[dict] = None) -> str:
        if not params:
            return path
        return f"{path}?{urlencode(sorted(params.items()))}"

    def _query(self, path: str, params: Optional[dict] = None, allow_missing: bool = False):
        key = self._key(path, params)
        if key in self._cache:
            return self._cache[key]
        try:
            data = self._request("GET", path, params=params).json()
        except FamilyConnectAPIError as e:
            if allow_missing and e.status_code == 404:
                data = None
            else:
                raise
        self._cache[key] = data
        return data

    def invalidate(self, *prefixes: str) -> None:
        """Drop cached reads whose key starts with any of ``prefixes``."""
        for key in list(self._cache):
            if key.startswith(prefixes):
                del self._cache[key]

    def clear_cache(self) -> None:
        self._cache.clear()

    # ========= Auth =========

    def login(self, username: str, password: str) -> PublicUser:
        data = self._request(
            "POST", "/api/auth/login", json={"username": username, "password": password}
        ).json()
        self.clear_cache()
        data.pop("message", None)
        self._cache["/api/auth/me"] = data
        return PublicUser.model_validate(data)

    def logout(self) -> None:
        self._request("POST", "/api/auth/logout")
        self.clear_cache()

    def me(self) -> PublicUser:
        return PublicUser.model_validate(self._query("/api/auth/me"))

    # ========= Status =========

    def get_status(self) -> Optional[StatusUpdate]:
        data = self._query("/api/status", allow_missing=True)
        return StatusUpdate.model_validate(data) if data is not None else None

    def post_status(self, status: str = "ok", battery_level: Optional[int] = None) -> StatusUpdate:
        body = {"status": status}
        if battery_level is not None:
            body["batteryLevel"] = battery_level
        data = self._request("POST", "/api/status", json=body).json()
        self.invalidate("/api/status")
        return StatusUpdate.model_validate(data)

    def trigger_emergency(self, battery_level: Optional[int] = None) -> StatusUpdate:
        logger.warning("Triggering emergency status")
        return self.post_status("emergency", battery_level)

    # ========= Location =========

    def get_location(self) -> Optional[Location]:
        data = self._query("/api/location", allow_missing=True)
        return Location.model_validate(data) if data is not None else None

    def get_location_history(self) -> List[Location]:
        return [Location.model_validate(row) for row in self._query("/api/location/history")]

    def post_location(
        self, latitude: str, longitude: str, address: Optional[str] = None
    ) -> Location:
        body = {"latitude": latitude, "longitude": longitude}
        if address is not None:
            body["address"] = address
        data = self._request("POST", "/api/location", json=body).json()
        # also covers /api/location/history
        self.invalidate("/api/location")
        return Location.model_validate(data)

    # ========= Family =========

    def get_family(self) -> List[FamilyMember]:
        return [FamilyMember.model_validate(row) for row in self._query("/api/family")]

    def get_family_location(self, member_id: int) -> Optional[Location]:
        data = self._query(f"/api/family/{member_id}/location", allow_missing=True)
        return Location.model_validate(data) if data is not None else None

    def get_family_check_in(self, member_id: int, limit: Optional[int] = None) -> List[CheckIn]:
        params = {"limit": limit} if limit is not None else None
        rows = self._query(f"/api/family/{member_id}/check-in", params)
        return [CheckIn.model_validate(row) for row in rows]

    def get_family_check_ins(self) -> List[FamilyCheckIn]:
        return [FamilyCheckIn.model_validate(row) for row in self._query("/api/family-checkins")]

    # ========= Check-in =========

    def check_in(self, mood: Optional[str] = None, message: Optional[str] = None) -> CheckIn:
        body = {}
        if mood is not None:
            body["mood"] = mood
        if message is not None:
            body["message"] = message
        data = self._request("POST", "/api/check-in", json=body).json()
        self.invalidate("/api/check-in")
        return CheckIn.model_validate(data)

    def get_check_ins(self, limit: Optional[int] = None) -> List[CheckIn]:
        params = {"limit": limit} if limit is not None else None
        return [CheckIn.model_validate(row) for row in self._query("/api/check-in", params)]

    # ========= Views =========

    def dashboard(self) -> Dashboard:
        return Dashboard(
            user=self.me(),
            status=self.get_status(),
            location=self.get_location(),
            family=self.get_family(),
            family_check_ins=self.get_family_check_ins(),
        )


def share_location(
    client: FamilyConnectClient,
    geocoder: NominatimGeocoder,
    latitude: str,
    longitude: str,
) -> Location:
    """Resolve an address for the coordinates and post them."""
    address = geocoder.reverse(latitude, longitude)
    return client.post_location(latitude, longitude, address)
