# pytest models/tests/test_family_models.py -q

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from models.family_models import CheckInBody, LocationBody, StatusBody, StatusUpdate

pytestmark = pytest.mark.unit


def test_serializes_camel_case():
    update = StatusUpdate(
        id=1,
        user_id=2,
        status="ok",
        battery_level=42,
        timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )

    data = update.model_dump(by_alias=True)

    assert data["userId"] == 2
    assert data["batteryLevel"] == 42


def test_bodies_accept_camel_case_input():
    assert StatusBody.model_validate({"batteryLevel": 10}).battery_level == 10


@pytest.mark.parametrize("latitude", ["abc", "91", "NaN", "", "4_0", "1e1", "Infinity", "+5"])
def test_location_rejects_bad_latitude(latitude):
    with pytest.raises(ValidationError):
        LocationBody(latitude=latitude, longitude="0")


def test_location_accepts_decimal_strings():
    body = LocationBody(latitude=" 40.7128", longitude="-74.0060")
    assert body.latitude == "40.7128"


def test_status_rejects_unknown_value_and_battery_range():
    with pytest.raises(ValidationError):
        StatusBody(status="fine")
    with pytest.raises(ValidationError):
        StatusBody(battery_level=101)


def test_check_in_mood_is_optional_but_constrained():
    assert CheckInBody().mood is None
    with pytest.raises(ValidationError):
        CheckInBody(mood="ecstatic")
