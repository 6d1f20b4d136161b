# pytest libs/tests/test_geocoding.py -q

import httpx
import pytest

from libs.geocoding import UNKNOWN_LOCATION, NominatimGeocoder

pytestmark = pytest.mark.unit


def _geocoder(handler) -> NominatimGeocoder:
    client = httpx.Client(
        base_url="https://nominatim.test", transport=httpx.MockTransport(handler)
    )
    return NominatimGeocoder(user_agent="FamilyConnectTests/1.0", http_client=client)


def test_reverse_returns_display_name():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        return httpx.Response(200, json={"display_name": "Empire State Building, New York"})

    address = _geocoder(handler).reverse("40.7484", "-73.9857")

    assert address == "Empire State Building, New York"
    request = seen["request"]
    assert request.url.path == "/reverse"
    assert request.url.params["lat"] == "40.7484"
    assert request.url.params["lon"] == "-73.9857"
    assert request.url.params["format"] == "json"
    assert request.url.params["zoom"] == "18"
    assert request.headers["User-Agent"] == "FamilyConnectTests/1.0"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"error": "Unable to geocode"}),
        httpx.Response(200, text="not json"),
    ],
)
def test_reverse_degrades_to_unknown(response):
    assert _geocoder(lambda request: response).reverse("0", "0") == UNKNOWN_LOCATION


def test_reverse_network_error_is_unknown():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    assert _geocoder(handler).reverse("0", "0") == UNKNOWN_LOCATION
