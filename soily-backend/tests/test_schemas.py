from datetime import datetime, timedelta, timezone

import pytest

from services.schemas import (
    Subscription, ValidationError, normalise_email, normalise_phone, parse_address,
    parse_analysis_date, parse_choice, parse_crop_recommendation,
    parse_id_list, parse_notes, parse_soil_sample, validate_password,
    SEASONS,
)
from conftest import analysis_body, make_analysis, make_farmer


def _soil(**overrides):
    soil = dict(analysis_body()["soilProperties"])
    soil.update(overrides)
    return soil


CLIMATE = {"rainfall": 900, "temperature": 26}


def test_parse_soil_sample():
    sample = parse_soil_sample(_soil(), CLIMATE)
    assert sample.ph == 6.5
    assert sample.organic_carbon == 25
    assert sample.bulk_density is None
    assert sample.rainfall == 900.0


@pytest.mark.parametrize("soil, field", [
    (_soil(pH=15), "pH"),
    (_soil(pH="acidic"), "pH"),
    (_soil(nitrogen=None), "nitrogen"),
    (_soil(potassium=True), "potassium"),
    (_soil(nitrogen=float("inf")), "nitrogen"),
    (_soil(organicCarbon=float("-inf")), "organicCarbon"),
    (_soil(clay=120), "clay"),
    (_soil(soilType="Gravel"), "soilType"),
])
def test_parse_soil_sample_rejects_bad_fields(soil, field):
    with pytest.raises(ValidationError) as exc:
        parse_soil_sample(soil, CLIMATE)
    assert exc.value.field == field


def test_parse_soil_sample_requires_climate():
    with pytest.raises(ValidationError) as exc:
        parse_soil_sample(_soil(), None)
    assert exc.value.field == "climateData"


def test_parse_crop_recommendation():
    assert parse_crop_recommendation(None) is None
    rec = parse_crop_recommendation({
        "primaryCrop": {"name": "Onion", "matchScore": 82, "fertilizer": "NPK"},
        "alternativeCrops": [{"name": "Maize", "matchScore": 70}],
    })
    assert rec.primary.name == "Onion"
    assert rec.alternatives[0].match_score == 70.0

    with pytest.raises(ValidationError):
        parse_crop_recommendation({"primaryCrop": {"name": "Onion"}})


def test_parse_analysis_date_defaults_to_utc():
    parsed = parse_analysis_date("2025-03-05T08:00:00")
    assert parsed.tzinfo == timezone.utc
    assert parse_analysis_date("2025-03-05T08:00:00Z").hour == 8
    with pytest.raises(ValidationError):
        parse_analysis_date("yesterday")


def test_parse_choice():
    assert parse_choice({}, "season", SEASONS, default="Rabi") == "Rabi"
    assert parse_choice({"season": "Zaid"}, "season", SEASONS) == "Zaid"
    with pytest.raises(ValidationError):
        parse_choice({"season": "Monsoon"}, "season", SEASONS)
    with pytest.raises(ValidationError):
        parse_choice({}, "season", SEASONS, required=True)


def test_contact_normalisation():
    assert normalise_email("  Farmer@Example.COM ") == "farmer@example.com"
    assert normalise_phone("98765 43210") == "9876543210"
    with pytest.raises(ValidationError):
        normalise_phone("1234567890")
    with pytest.raises(ValidationError):
        normalise_email("not-an-email")


def test_password_and_notes_limits():
    with pytest.raises(ValidationError) as exc:
        validate_password("short", "newPassword")
    assert exc.value.field == "newPassword"
    with pytest.raises(ValidationError):
        parse_notes("x" * 1001)
    assert parse_notes(None) is None


def test_parse_address_and_ids():
    assert parse_address({"city": "Pune", "pincode": "411001"}) == {
        "city": "Pune", "pincode": "411001", "country": "India",
    }
    with pytest.raises(ValidationError):
        parse_address({"pincode": "4110"})
    assert parse_id_list([1, "2"], "farmerIds") == [1, 2]
    with pytest.raises(ValidationError):
        parse_id_list("1,2", "farmerIds")
    with pytest.raises(ValidationError):
        parse_id_list([True], "farmerIds")


def test_analysis_serialisation():
    body = make_analysis().to_dict()
    assert body["formatted_date"] == "15 July 2025"
    assert body["npk_summary"] == "N: 0.6, P: 45, K: 170"
    assert body["boundary"]["center_point"]["latitude"] == 18.5205
    assert len(body["crop_recommendation"]["alternative_crops"]) == 4


def test_farmer_profile_hides_password_hash():
    farmer = make_farmer(password_hash="pbkdf2:secret")
    assert "password_hash" not in farmer.to_dict()
    assert farmer.to_dict()["farm_size_description"] == "2-10 acres"
    assert farmer.has_premium_access() is False


def test_farmer_profile_reports_subscription_state():
    lapsed = make_farmer(subscription=Subscription(
        type="premium", status="active",
        end_date=datetime.now(timezone.utc) - timedelta(days=1),
    ))
    body = lapsed.to_dict()["subscription"]
    assert body["is_active"] is False
    assert body["has_premium_access"] is True

    body = make_farmer().to_dict()["subscription"]
    assert body["is_active"] is True
    assert body["has_premium_access"] is False
