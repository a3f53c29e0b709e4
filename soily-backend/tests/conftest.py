"""
Shared fixtures: an app over a throwaway SQLite file, logged-in clients,
and small builders for farmer / analysis records.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone

import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from services.schemas import (
    BoundaryGeometry, CropMatch, CropRecommendation, Farmer, PrimaryCrop,
    SoilAnalysis, SoilSample,
)


ADMIN_USERNAME = "soily-admin"
ADMIN_PASSWORD = "admin-pass-123"

FARMER_PASSWORD = "secret-pass-1"

# Roughly a 100 m square near Pune
FIELD_RING = [
    [73.8500, 18.5200],
    [73.8510, 18.5200],
    [73.8510, 18.5210],
    [73.8500, 18.5210],
    [73.8500, 18.5200],
]


# ── Record builders ──────────────────────────────────────────────────────────

def make_sample(**overrides) -> SoilSample:
    values = dict(
        ph=6.8, nitrogen=0.6, phosphorus=45.0, potassium=170.0,
        organic_carbon=22.0, clay=35.0, soil_type="Clay Loam",
        rainfall=800.0, temperature=27.0, sand=30.0, bulk_density=1.3,
    )
    values.update(overrides)
    return SoilSample(**values)


def make_analysis(crop: str = "Rice", season: str = "Kharif",
                  when: datetime | None = None, **overrides) -> SoilAnalysis:
    values = dict(
        id=1,
        farmer_id=1,
        boundary=BoundaryGeometry(
            coordinates=[(73.85, 18.52), (73.851, 18.52), (73.851, 18.521)],
            area=2.5, perimeter=0.42,
            center_latitude=18.5205, center_longitude=73.8505,
        ),
        sample=make_sample(),
        crop_recommendation=CropRecommendation(
            primary=PrimaryCrop(crop, 88.0, "Urea + DAP"),
            alternatives=[CropMatch("Maize", 80.0), CropMatch("Tur", 75.0),
                          CropMatch("Gram", 70.0), CropMatch("Onion", 65.0)],
        ),
        soil_health="Excellent",
        fertility_rating=8.5,
        analysis_date=when or datetime(2025, 7, 15, 10, 0, tzinfo=timezone.utc),
        season=season,
    )
    values.update(overrides)
    return SoilAnalysis(**values)


def make_farmer(**overrides) -> Farmer:
    values = dict(
        id=1, full_name="Sunita Patil", email="sunita@example.com",
        phone="9876543210", location="Pune", farm_size="medium",
        created_at=datetime(2025, 1, 10, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return Farmer(**values)


def registration_body(**overrides) -> dict:
    body = {
        "fullName": "Ramesh Jadhav",
        "email":    "ramesh@example.com",
        "phone":    "9822012345",
        "location": "Satara",
        "farmSize": "small",
        "password": FARMER_PASSWORD,
    }
    body.update(overrides)
    return body


def analysis_body(**overrides) -> dict:
    body = {
        "boundary": {"coordinates": FIELD_RING},
        "soilProperties": {
            "pH": 6.5, "nitrogen": 0.2, "phosphorus": 25, "potassium": 100,
            "organicCarbon": 25, "clay": 30, "sand": 40, "soilType": "Clay Loam",
        },
        "climateData": {"rainfall": 1200, "temperature": 28},
        "analysisDate": "2025-07-20T09:30:00Z",
    }
    body.update(overrides)
    return body


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING":             True,
        "SECRET_KEY":          "test-secret",
        "DATABASE":            os.path.join(tmp_path, "soily-test.db"),
        "ADMIN_USERNAME":      ADMIN_USERNAME,
        "ADMIN_PASSWORD_HASH": generate_password_hash(ADMIN_PASSWORD),
        "REPORT_LOGO_PATH":    os.path.join(tmp_path, "missing-logo.png"),
        "REPORT_FONTS_DIR":    None,
    })
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def farmer_client(client):
    """Client logged in as a freshly registered farmer."""
    resp = client.post("/auth/register", json=registration_body())
    assert resp.status_code == 201
    resp = client.post("/auth/login", json={
        "email": "ramesh@example.com", "password": FARMER_PASSWORD,
    })
    assert resp.status_code == 200
    return client


@pytest.fixture
def admin_client(app):
    client = app.test_client()
    resp = client.post("/admin/login", json={
        "username": ADMIN_USERNAME, "password": ADMIN_PASSWORD,
    })
    assert resp.status_code == 200
    return client
