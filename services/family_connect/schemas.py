from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_core import PydanticCustomError

from models.family_models import CamelModel, CheckIn, Location, PublicUser, StatusUpdate


class LoginRequest(BaseModel):
    # Defaults let the validators below report the missing field by name
    username: str = Field(default="", validate_default=True)
    password: str = Field(default="", validate_default=True)

    @field_validator("username")
    @classmethod
    def _username_required(cls, v: str) -> str:
        if not v:
            raise PydanticCustomError("username_required", "Username is required")
        return v

    @field_validator("password")
    @classmethod
    def _password_required(cls, v: str) -> str:
        if not v:
            raise PydanticCustomError("password_required", "Password is required")
        return v


class LoginResponse(PublicUser):
    message: str = "Login successful"


class MessageResponse(BaseModel):
    message: str


class SimulatedCheckInResponse(CamelModel):
    message: str
    check_in: CheckIn
    status: StatusUpdate
    location: Optional[Location] = None
