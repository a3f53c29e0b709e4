from datetime import datetime

import pytest

from services.schemas import PrimaryCrop
from services.scoring_service import (
    classify_soil_health, derive_scores, determine_season, fertility_rating,
    generate_recommendations, nutrient_status,
)
from conftest import make_sample


def test_no_bonus_sample_rates_five_and_all_low():
    sample = make_sample(nitrogen=0.2, phosphorus=25, potassium=100)
    scores = derive_scores(sample)
    assert scores["fertility_rating"] == 5.0
    assert scores["nitrogen_status"] == "Low"
    assert scores["phosphorus_status"] == "Low"
    assert scores["potassium_status"] == "Low"


def test_all_bonuses_reach_ten():
    assert fertility_rating(0.6, 45, 160) == 10.0


@pytest.mark.parametrize("n, p, k", [
    (-1e9, -1e9, -1e9),
    (1e12, 1e12, 1e12),
    (None, None, None),
    (0.51, -5, 1e6),
])
def test_fertility_is_clamped(n, p, k):
    assert 0.0 <= fertility_rating(n, p, k) <= 10.0


def test_bonus_thresholds_are_strict():
    assert fertility_rating(0.5, 40, 150) == 5.0


@pytest.mark.parametrize("ph, oc, expected", [
    (6.5, 25, "Excellent"),
    (6.0, 20, "Excellent"),
    (7.5, 100, "Excellent"),
    (5.8, 16, "Good"),
    (6.5, 15, "Good"),
    (8.4, 12, "Fair"),
    (4.8, 6, "Poor"),
    (9.2, 40, "Critical"),
    (4.4, 40, "Critical"),
    (6.5, 4.9, "Critical"),
])
def test_soil_health_bands(ph, oc, expected):
    assert classify_soil_health(ph, oc) == expected


def test_nutrient_status_bands():
    assert nutrient_status(0.5, "N") == "Medium"
    assert nutrient_status(0.8, "N") == "Good"
    assert nutrient_status(51, "P") == "Good"
    assert nutrient_status(150, "K") == "Medium"
    assert nutrient_status(181, "K") == "Good"


@pytest.mark.parametrize("month, season", [
    (1, "Rabi"), (3, "Rabi"), (4, "Zaid"), (5, "Zaid"),
    (6, "Kharif"), (10, "Kharif"), (11, "Rabi"), (12, "Rabi"),
])
def test_determine_season(month, season):
    assert determine_season(datetime(2025, month, 1)) == season


# ── Advisories ───────────────────────────────────────────────────────────────

CROP = PrimaryCrop("Rice", 87.4, "Urea + DAP")


def test_onboarding_advice_without_analysis():
    advice = generate_recommendations(None, None)
    assert [a["title"] for a in advice] == [
        "Create Your First Soil Map", "Upload Lab Results", "Explore Crop Database",
    ]
    assert {a["kind"] for a in advice} == {"onboarding"}


def test_advice_priority_order_and_cap():
    sample = make_sample(ph=5.0, nitrogen=0.1, organic_carbon=8)
    advice = generate_recommendations(sample, CROP)
    assert [a["kind"] for a in advice] == ["ph", "npk", "crop", "organic_matter"]
    assert advice[0]["title"] == "Soil pH Too Acidic"
    assert advice[1]["title"] == "Fertilizer Application Needed"
    assert "Nitrogen" in advice[1]["desc"]
    assert advice[2]["title"] == "Best Crop: Rice"
    assert "87%" in advice[2]["desc"]


def test_balanced_sample_skips_organic_matter():
    advice = generate_recommendations(make_sample(), CROP)
    assert [a["title"] for a in advice] == [
        "Optimal pH Level", "Balanced Nutrient Levels", "Best Crop: Rice",
    ]


def test_alkaline_advice():
    advice = generate_recommendations(make_sample(ph=8.6), CROP)
    assert advice[0]["title"] == "Soil pH Too Alkaline"


def test_advisory_potassium_uses_its_own_breakpoints():
    # 190 is "Good" for the report table but only "optimal" for advice;
    # neither marks it deficient.
    sample = make_sample(potassium=190)
    assert nutrient_status(190, "K") == "Good"
    advice = generate_recommendations(sample, CROP)
    assert advice[1]["title"] == "Balanced Nutrient Levels"
