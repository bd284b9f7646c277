"""Driver registration and login endpoints."""

from fastapi import APIRouter, Depends

from bustrack.api.deps import current_driver, get_services
from bustrack.models.tables import Driver
from bustrack.schemas.auth import (
    DriverOut,
    LoginRequest,
    LoginResponse,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
)
from bustrack.services import Services

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(req: RegisterRequest, services: Services = Depends(get_services)):
    """Register a new driver."""
    driver = await services.credentials.create_driver(req)
    return RegisterResponse(
        message="Registration successful! You can now login.",
        driver=DriverOut.model_validate(driver),
    )


@router.post("/login", response_model=LoginResponse)
async def login(req: LoginRequest, services: Services = Depends(get_services)):
    """Exchange email (or license number) and password for a bearer token."""
    driver = await services.credentials.authenticate(req)
    return LoginResponse(
        message="Login successful",
        token=services.tokens.mint(driver.id),
        driver=DriverOut.model_validate(driver),
    )


@router.get("/me", response_model=MeResponse)
async def me(driver: Driver = Depends(current_driver)):
    return MeResponse(driver=DriverOut.model_validate(driver))
