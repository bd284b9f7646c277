from typing import Literal

from pydantic import Field, model_validator

from bustrack.schemas.base import CamelModel

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class RegisterRequest(CamelModel):
    name: str = Field(min_length=1)
    email: str = Field(pattern=EMAIL_PATTERN)
    phone: str = Field(min_length=1)
    password: str = Field(min_length=6)
    license_number: str = Field(min_length=1)
    bus_number: str | None = None
    route_type: Literal["city", "express", "both"] = "both"
    home_city: str | None = None
    operating_cities: list[str] = []


class LoginRequest(CamelModel):
    email: str | None = None
    license_number: str | None = None
    password: str = Field(min_length=1)

    @model_validator(mode="after")
    def _identity_given(self):
        if not (self.email or self.license_number):
            raise ValueError("Email or license number is required")
        return self


class DriverOut(CamelModel):
    id: int
    name: str
    email: str
    phone: str
    license_number: str
    bus_number: str | None = None
    route_type: str
    home_city: str | None = None
    operating_cities: list[str] = []


class RegisterResponse(CamelModel):
    success: bool = True
    message: str
    driver: DriverOut


class LoginResponse(CamelModel):
    success: bool = True
    message: str
    token: str
    driver: DriverOut


class MeResponse(CamelModel):
    success: bool = True
    driver: DriverOut
