"""FastAPI dependencies shared by the routers."""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bustrack.errors import AuthenticationError, DriverNotFound
from bustrack.models.tables import Driver
from bustrack.services import Services

_bearer = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def current_driver(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    services: Services = Depends(get_services),
) -> Driver:
    """Driver identified by the request's bearer token."""
    if credentials is None:
        raise AuthenticationError("Not authorized, no token")
    driver_id = services.tokens.validate(credentials.credentials)
    try:
        return await services.credentials.get(driver_id)
    except DriverNotFound:
        raise AuthenticationError("Not authorized, driver not found")
