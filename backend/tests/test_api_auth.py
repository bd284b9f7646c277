"""Tests for driver registration and login endpoints."""

from conftest import login_headers, make_settings, register


def test_register_returns_driver_without_password(client):
    resp = register(client, email="Ravi@Example.com", licenseNumber="ts0120240001")
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Registration successful! You can now login."
    driver = body["driver"]
    assert driver["email"] == "ravi@example.com"
    assert driver["licenseNumber"] == "TS0120240001"
    assert driver["operatingCities"] == ["Hyderabad", "Vijayawada"]
    assert "password" not in driver
    assert "passwordHash" not in driver


def test_register_duplicate_email(client):
    assert register(client).status_code == 201
    resp = register(client, licenseNumber="TS0199999999")
    assert resp.status_code == 409
    assert resp.json() == {"success": False, "message": "Email already registered"}


def test_register_duplicate_license(client):
    assert register(client).status_code == 201
    resp = register(client, email="other@example.com")
    assert resp.status_code == 409
    assert resp.json()["message"] == "License number already registered"


def test_register_missing_field(client):
    resp = client.post("/api/auth/register", json={"email": "a@b.co", "password": "secret123"})
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Please provide all required fields"}


def test_register_short_password(client):
    resp = register(client, password="12345")
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_login_by_email_and_license(client):
    register(client)
    resp = client.post("/api/auth/login", json={"email": "RAVI@example.com", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["token"]

    resp = client.post("/api/auth/login", json={"licenseNumber": "TS0120240001", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["driver"]["name"] == "Ravi Kumar"


def test_login_wrong_password(client):
    register(client)
    resp = client.post("/api/auth/login", json={"email": "ravi@example.com", "password": "wrong-pass"})
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "message": "Invalid credentials"}


def test_login_requires_identity(client):
    resp = client.post("/api/auth/login", json={"password": "secret123"})
    assert resp.status_code == 400


def test_me(client):
    register(client)
    resp = client.get("/api/auth/me", headers=login_headers(client))
    assert resp.status_code == 200
    assert resp.json()["driver"]["email"] == "ravi@example.com"


def test_me_without_token(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Not authorized, no token"


def test_me_with_bad_token(client):
    resp = client.get("/api/auth/me", headers={"Authorization": "Bearer nonsense"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Invalid token"


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_app_is_only_built_by_factory():
    from bustrack import main

    assert not hasattr(main, "app")
    app = main.create_app(make_settings())
    assert app.title == "Bus Fleet Live Tracking"
