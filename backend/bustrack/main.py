"""FastAPI application entry point.

Serve with ``uvicorn bustrack.main:create_app --factory``.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from bustrack.api import auth, bus, routes, stops, ws
from bustrack.config import Settings
from bustrack.core.scheduler import create_scheduler
from bustrack.errors import BusTrackError, InternalError
from bustrack.models import tables  # noqa: F401
from bustrack.models.base import Base
from bustrack.services import Services, build_services

logger = logging.getLogger(__name__)


def _error_body(message: str) -> dict:
    return {"success": False, "message": message}


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    if first.get("type") == "missing":
        return "Please provide all required fields"
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    msg = str(first.get("msg", "Invalid value")).removeprefix("Value error, ")
    return f"{field}: {msg}" if field else msg


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BusTrackError)
    async def _domain_error(request: Request, exc: BusTrackError):
        if exc.status_code >= 500 and not isinstance(exc, InternalError):
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message))

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content=_error_body(_validation_message(exc)))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body(InternalError.default_message))


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    """Build the application; settings are read once here and passed down."""
    settings = settings or (services.settings if services else Settings())
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown."""
        svc = services or build_services(settings)
        app.state.services = svc

        # Create tables if they don't exist
        async with svc.db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        await svc.broadcaster.connect()

        scheduler = create_scheduler(settings, svc.progress, svc.broadcaster)
        scheduler.start()
        logger.info(
            "Bus tracker started - pushing live route status every %ds",
            settings.live_push_interval_seconds,
        )

        yield

        # Shutdown
        scheduler.shutdown(wait=False)
        await svc.discovery.close()
        await svc.broadcaster.close()
        await svc.db_engine.dispose()
        logger.info("Bus tracker shut down")

    app = FastAPI(
        title="Bus Fleet Live Tracking",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(auth.router)
    app.include_router(bus.router)
    app.include_router(stops.router)
    app.include_router(routes.router)
    app.include_router(ws.router)

    @app.get("/api/health")
    async def health(request: Request):
        svc: Services = request.app.state.services
        async with svc.session_factory() as session:
            await session.execute(text("SELECT 1"))
        return {"success": True, "status": "ok", "db": "connected"}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("bustrack.main:create_app", factory=True, host="0.0.0.0", port=Settings().port)
