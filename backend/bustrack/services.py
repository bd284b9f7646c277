"""Construction of the service graph from an explicit Settings object."""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from bustrack.config import Settings
from bustrack.core.broadcaster import Broadcaster
from bustrack.core.credentials import CredentialStore
from bustrack.core.position_ingest import PositionIngest
from bustrack.core.progress_engine import RouteProgressEngine
from bustrack.core.route_catalog import RouteCatalog
from bustrack.core.stop_directory import StopDirectory
from bustrack.core.stop_discovery import StopDiscovery
from bustrack.core.vehicle_registry import VehicleRegistry
from bustrack.db.session import create_engine, create_session_factory
from bustrack.security import TokenIssuer


@dataclass
class Services:
    settings: Settings
    db_engine: AsyncEngine
    session_factory: async_sessionmaker
    broadcaster: Broadcaster
    catalog: RouteCatalog
    stops: StopDirectory
    discovery: StopDiscovery
    registry: VehicleRegistry
    ingest: PositionIngest
    progress: RouteProgressEngine
    credentials: CredentialStore
    tokens: TokenIssuer


def build_services(settings: Settings, discovery: StopDiscovery | None = None) -> Services:
    db_engine = create_engine(settings)
    session_factory = create_session_factory(db_engine)
    broadcaster = Broadcaster(settings.redis_url)
    catalog = RouteCatalog(session_factory)
    registry = VehicleRegistry(session_factory, catalog)
    return Services(
        settings=settings,
        db_engine=db_engine,
        session_factory=session_factory,
        broadcaster=broadcaster,
        catalog=catalog,
        stops=StopDirectory(session_factory),
        discovery=discovery or StopDiscovery(settings),
        registry=registry,
        ingest=PositionIngest(registry, broadcaster),
        progress=RouteProgressEngine(session_factory, catalog),
        credentials=CredentialStore(session_factory),
        tokens=TokenIssuer(settings),
    )
