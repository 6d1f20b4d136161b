import re
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["member", "caregiver"]
StatusValue = Literal["ok", "emergency"]
Mood = Literal["good", "okay", "not_great"]

_DECIMAL_RE = re.compile(r"-?[0-9]+(\.[0-9]+)?")


class CamelModel(BaseModel):
    """Python attributes in snake_case, JSON in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_coordinate(value: str, limit: int, name: str) -> str:
    text = value.strip()
    # plain decimal only; Decimal() alone also takes "4_0", "1e2" and "Infinity"
    if not _DECIMAL_RE.fullmatch(text):
        raise ValueError(f"{name} must be a decimal number")
    if abs(Decimal(text)) > limit:
        raise ValueError(f"{name} must be between -{limit} and {limit}")
    return text


# ========= Stored rows =========


class PublicUser(CamelModel):
    id: int
    username: str
    name: str
    role: Role = "member"
    created_at: datetime


class User(PublicUser):
    # plaintext; never hashed
    password: str

    def to_public(self) -> PublicUser:
        return PublicUser(**self.model_dump(exclude={"password"}))


class Location(CamelModel):
    id: int
    user_id: int
    latitude: str
    longitude: str
    address: Optional[str] = None
    timestamp: datetime


class StatusUpdate(CamelModel):
    id: int
    user_id: int
    status: StatusValue = "ok"
    battery_level: Optional[int] = None
    timestamp: datetime


class FamilyConnection(CamelModel):
    id: int
    user_id: int
    family_member_id: int
    relationship: str


class CheckIn(CamelModel):
    id: int
    user_id: int
    message: Optional[str] = None
    mood: Mood = "good"
    timestamp: datetime


# ========= Derived projections =========


class FamilyMember(PublicUser):
    relationship: str
    last_seen: datetime


class FamilyCheckIn(CamelModel):
    member_id: int
    member_name: str
    relationship: str
    checkin: CheckIn
    last_seen: datetime


# ========= Request bodies and insert shapes =========
# Bodies are what clients send; Insert* add the owner and an optional timestamp.


class InsertUser(CamelModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    name: str = Field(min_length=1)
    role: Role = "member"


class LocationBody(CamelModel):
    latitude: str
    longitude: str
    address: Optional[str] = None

    @field_validator("latitude")
    @classmethod
    def _latitude(cls, v: str) -> str:
        return _check_coordinate(v, 90, "latitude")

    @field_validator("longitude")
    @classmethod
    def _longitude(cls, v: str) -> str:
        return _check_coordinate(v, 180, "longitude")


class InsertLocation(LocationBody):
    user_id: int
    timestamp: Optional[datetime] = None


class StatusBody(CamelModel):
    status: StatusValue = "ok"
    battery_level: Optional[int] = Field(default=None, ge=0, le=100)


class InsertStatusUpdate(StatusBody):
    user_id: int
    timestamp: Optional[datetime] = None


class InsertFamilyConnection(CamelModel):
    user_id: int
    family_member_id: int
    relationship: str = Field(min_length=1)


class CheckInBody(CamelModel):
    message: Optional[str] = None
    # missing or null means "good"
    mood: Optional[Mood] = None


class InsertCheckIn(CheckInBody):
    user_id: int
    timestamp: Optional[datetime] = None
