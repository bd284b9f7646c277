import httpx
import pytest
from fastapi.testclient import TestClient

from bustrack.config import Settings
from bustrack.core.stop_discovery import StopDiscovery
from bustrack.main import create_app
from bustrack.seed import seed
from bustrack.services import build_services

MIRRORS = ["https://mirror-a.test/api/interpreter", "https://mirror-b.test/api/interpreter"]


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+aiosqlite://",
        "redis_url": "",
        "jwt_secret": "test-secret",
        "overpass_urls": MIRRORS,
        "overpass_timeout_seconds": 2.0,
        "live_push_interval_seconds": 3600,
    }
    values.update(overrides)
    return Settings(**values)


def make_client(handler=None) -> TestClient:
    """App on a fresh in-memory store; ``handler`` answers Overpass requests."""
    settings = make_settings()
    transport = httpx.MockTransport(handler) if handler else None
    services = build_services(settings, discovery=StopDiscovery(settings, transport=transport))
    return TestClient(create_app(settings, services=services))


@pytest.fixture
def client():
    with make_client() as c:
        yield c


@pytest.fixture
def seeded(client):
    """Client whose catalog holds the sample Hyderabad network."""
    services = client.app.state.services

    async def _seed():
        async with services.session_factory() as session:
            await seed(session)

    client.portal.call(_seed)
    return client


def register(client: TestClient, **overrides) -> dict:
    body = {
        "name": "Ravi Kumar",
        "email": "ravi@example.com",
        "phone": "9876543210",
        "password": "secret123",
        "licenseNumber": "TS0120240001",
        "busNumber": "TS09Z1234",
        "routeType": "both",
        "homeCity": "Hyderabad",
        "operatingCities": ["Hyderabad", "Vijayawada"],
    }
    body.update(overrides)
    return client.post("/api/auth/register", json=body)


def login_headers(client: TestClient, email: str = "ravi@example.com", password: str = "secret123") -> dict:
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def driver_headers(client: TestClient, **overrides) -> dict:
    resp = register(client, **overrides)
    assert resp.status_code == 201, resp.text
    return login_headers(client, email=overrides.get("email", "ravi@example.com"))
