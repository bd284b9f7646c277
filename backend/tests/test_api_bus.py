"""Tests for the bus service lifecycle and live route endpoints."""

import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from bustrack.models.tables import Bus, Driver
from bustrack.schemas.bus import StartServiceRequest
from conftest import driver_headers


def start_city(client, headers, **overrides):
    body = {"routeNumber": "222r", "scheduledDeparture": "08:30"}
    body.update(overrides)
    return client.post("/api/bus/start", json=body, headers=headers)


def count_active(client) -> int:
    services = client.app.state.services

    async def _count():
        async with services.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(Bus).where(Bus.status == "active"))
            return result.scalar_one()

    return client.portal.call(_count)


def test_start_city_service(seeded):
    headers = driver_headers(seeded)
    resp = start_city(seeded, headers)
    assert resp.status_code == 201
    bus = resp.json()["bus"]
    assert bus["busNumber"] == "TS09Z1234"
    assert bus["routeType"] == "city"
    assert bus["routeNumber"] == "222R"
    assert bus["status"] == "active"
    assert bus["startLocation"] == "Ameerpet"
    assert bus["endLocation"] == "Hitech City"
    assert bus["operatingCity"] == "Hyderabad"
    assert bus["currentLocation"] == {"lat": None, "lng": None}


def test_second_start_conflicts(seeded):
    headers = driver_headers(seeded)
    assert start_city(seeded, headers).status_code == 201
    resp = start_city(seeded, headers)
    assert resp.status_code == 409
    assert resp.json()["message"] == "You already have an active bus service. Please stop it first."
    assert count_active(seeded) == 1


def test_stop_service(seeded):
    headers = driver_headers(seeded)
    bus_id = start_city(seeded, headers).json()["bus"]["id"]

    resp = seeded.post("/api/bus/stop", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["bus"]["id"] == bus_id
    assert resp.json()["bus"]["status"] == "inactive"
    assert resp.json()["bus"]["endedAt"] is not None

    resp = seeded.post("/api/bus/stop", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "No active bus service found"

    # A new service can start once the old one stopped
    assert start_city(seeded, headers).status_code == 201


def test_status(seeded):
    headers = driver_headers(seeded)
    resp = seeded.get("/api/bus/status", headers=headers)
    assert resp.json() == {"success": True, "isActive": False, "bus": None}

    start_city(seeded, headers)
    resp = seeded.get("/api/bus/status", headers=headers)
    assert resp.json()["isActive"] is True
    assert resp.json()["bus"]["routeNumber"] == "222R"


def test_start_requires_token(seeded):
    assert seeded.post("/api/bus/start", json={"routeNumber": "222R"}).status_code == 401


def test_start_unknown_route(seeded):
    headers = driver_headers(seeded)
    resp = start_city(seeded, headers, routeNumber="999X")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Route 999X not found"}
    assert count_active(seeded) == 0


def test_start_location_must_be_on_route(seeded):
    headers = driver_headers(seeded)
    resp = start_city(seeded, headers, startLocation="Koti")
    assert resp.status_code == 400
    assert "not a stop on route 222R" in resp.json()["message"]


def test_start_bad_departure_time(seeded):
    headers = driver_headers(seeded)
    resp = start_city(seeded, headers, scheduledDeparture="25:00")
    assert resp.status_code == 400


def test_city_driver_cannot_run_express(seeded):
    headers = driver_headers(seeded, routeType="city")
    resp = seeded.post(
        "/api/bus/start", headers=headers,
        json={"routeType": "express", "sourceCity": "Hyderabad", "destinationCity": "Vijayawada"},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "You are registered for city routes only"


def test_start_express_service(seeded):
    headers = driver_headers(seeded, routeType="express")
    resp = seeded.post(
        "/api/bus/start", headers=headers,
        json={"sourceCity": "Hyderabad", "destinationCity": "Vijayawada", "busNumber": "ap07x1"},
    )
    assert resp.status_code == 201
    bus = resp.json()["bus"]
    assert bus["routeType"] == "express"
    assert bus["busNumber"] == "AP07X1"
    assert bus["startLocation"] == "Hyderabad"
    assert bus["endLocation"] == "Vijayawada"
    assert bus["routeNumber"] is None


def test_express_requires_cities(seeded):
    headers = driver_headers(seeded, routeType="express")
    resp = seeded.post("/api/bus/start", headers=headers, json={"sourceCity": "Hyderabad"})
    assert resp.status_code == 400
    assert resp.json()["message"] == "Source and destination cities are required for express buses"


def test_express_outside_operating_cities(seeded):
    headers = driver_headers(seeded, routeType="express")
    resp = seeded.post(
        "/api/bus/start", headers=headers,
        json={"sourceCity": "Hyderabad", "destinationCity": "Chennai"},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Chennai is not one of your operating cities"


def test_location_update_and_live_status(seeded):
    headers = driver_headers(seeded)
    bus_id = start_city(seeded, headers).json()["bus"]["id"]

    resp = seeded.post(
        "/api/bus/location", headers=headers,
        json={"busId": bus_id, "lat": 17.44136, "lng": 78.4420, "heading": 270, "speed": 18.5},
    )
    assert resp.status_code == 200
    assert resp.json()["busId"] == bus_id

    resp = seeded.get("/api/bus/route/live/222r")
    assert resp.status_code == 200
    body = resp.json()
    assert body["routeNumber"] == "222R"
    assert [s["name"] for s in body["stops"]] == ["Ameerpet", "SR Nagar", "ESI", "Erragadda", "Hitech City"]
    assert body["queueCount"] == 0
    [record] = body["activeBuses"]
    assert record["busId"] == bus_id
    assert record["lastStopSequence"] == 2
    assert record["nextStopSequence"] == 3
    assert record["status"] == "at-station"
    assert record["distanceToNearestStop"] == 40
    assert record["nearestStopName"] == "SR Nagar"
    assert record["scheduledStartTime"] == "08:30"
    assert record["speed"] == 18.5


def test_live_status_bus_without_position(seeded):
    start_city(seeded, driver_headers(seeded))
    [record] = seeded.get("/api/bus/route/live/222R").json()["activeBuses"]
    assert record["distanceToNearestStop"] is None
    assert record["lastStopSequence"] == 1
    assert record["nextStopSequence"] == 2
    assert record["status"] == "in-transit"


def test_live_status_unknown_route(seeded):
    resp = seeded.get("/api/bus/route/live/999X")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Route 999X not found"}


def test_location_rejected_for_other_bus(seeded):
    headers = driver_headers(seeded)
    bus_id = start_city(seeded, headers).json()["bus"]["id"]
    other = driver_headers(seeded, email="sita@example.com", licenseNumber="TS0120240002")
    resp = seeded.post("/api/bus/location", headers=other, json={"busId": bus_id, "lat": 17.44, "lng": 78.44})
    assert resp.status_code == 404


def test_location_rejects_bad_coordinates(seeded):
    headers = driver_headers(seeded)
    bus_id = start_city(seeded, headers).json()["bus"]["id"]
    resp = seeded.post("/api/bus/location", headers=headers, json={"busId": bus_id, "lat": 91, "lng": 78.44})
    assert resp.status_code == 400


def test_active_lists_only_positioned_buses(seeded):
    headers = driver_headers(seeded)
    bus_id = start_city(seeded, headers).json()["bus"]["id"]
    assert seeded.get("/api/bus/active").json()["count"] == 0

    seeded.post("/api/bus/location", headers=headers, json={"busId": bus_id, "lat": 17.4375, "lng": 78.4483})
    body = seeded.get("/api/bus/active", params={"routeNumber": "222r"}).json()
    assert body["count"] == 1
    assert body["buses"][0]["lat"] == 17.4375
    assert seeded.get("/api/bus/active", params={"routeNumber": "10H"}).json()["count"] == 0


def test_search_buses_and_routes(seeded):
    headers = driver_headers(seeded)
    start_city(seeded, headers)

    body = seeded.get("/api/bus/search", params={"from": "ameerpet", "to": "hitech"}).json()
    assert body["count"] == 1
    assert body["buses"][0]["routeNumber"] == "222R"
    # 222R matches both terms, 10H only passes through Ameerpet
    assert [r["routeNumber"] for r in body["routes"]] == ["222R", "10H"]
    assert body["routes"][0]["from"] == "Ameerpet"


def test_route_with_explicit_stops(seeded):
    route = seeded.get("/api/bus/route/222R").json()["route"]
    assert route["source"] == "explicit"
    assert route["stops"][4]["estimatedTimeFromStart"] == 35
    assert route["stops"][0]["isMajor"] is True


def test_route_synthesized_from_via_text(seeded):
    route = seeded.get("/api/bus/route/10h").json()["route"]
    assert route["source"] == "via"
    names = [s["name"] for s in route["stops"]]
    assert names == ["Secunderabad", "Paradise", "Begumpet", "Ameerpet", "Punjagutta", "Masab Tank", "Mehdipatnam"]
    assert [s["estimatedTimeFromStart"] for s in route["stops"]] == [0, 10, 20, 30, 40, 50, 60]
    placeholder = route["stops"][5]
    assert placeholder["resolved"] is False
    assert placeholder["lat"] is None


def test_virtual_route_from_tagged_stops(seeded):
    route = seeded.get("/api/bus/route/47L").json()["route"]
    assert route["source"] == "virtual"
    assert route["routeName"] == "Route 47L"
    assert [s["name"] for s in route["stops"]] == ["Abids", "Koti", "Nampally"]


def test_unknown_route(seeded):
    resp = seeded.get("/api/bus/route/999X")
    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_concurrent_starts_leave_one_active_bus(seeded):
    driver_headers(seeded)
    services = seeded.app.state.services

    async def _race():
        driver = await services.credentials.find_driver_by_email_or_license("ravi@example.com", None)
        req = StartServiceRequest(route_number="222R")
        return await asyncio.gather(
            services.registry.start_service(driver, req),
            services.registry.start_service(driver, req),
            return_exceptions=True,
        )

    results = seeded.portal.call(_race)
    assert sorted(type(r).__name__ for r in results) == ["Bus", "ConflictError"]
    assert count_active(seeded) == 1


def test_store_rejects_second_active_bus_for_driver(seeded):
    driver_headers(seeded)
    services = seeded.app.state.services

    async def _insert(statuses):
        async with services.session_factory() as session:
            driver = (await session.execute(select(Driver))).scalar_one()
            for status in statuses:
                session.add(Bus(bus_number="TS09Z1234", route_type="city", driver_id=driver.id, status=status))
            await session.commit()

    # Any number of finished services may coexist with one active service
    seeded.portal.call(_insert, ["inactive", "inactive", "active"])
    with pytest.raises(IntegrityError):
        seeded.portal.call(_insert, ["active"])
    assert count_active(seeded) == 1
