"""
services/scoring_service.py
----------------------------
Scoring Service — derives soil health, fertility rating and NPK status from
a soil sample, and turns a sample into prioritised field advisories.

Fertility rating (0–10):
    start at 5.0
    nitrogen   > 0.5  →  +1.5
    phosphorus > 40   →  +1.5
    potassium  > 150  →  +2.0
    clamp to [0, 10]

Soil health (first matching row wins):
    Excellent  pH 6.0–7.5  and organic carbon >= 20
    Good       pH 5.5–8.0  and organic carbon >= 15
    Fair       pH 5.0–8.5  and organic carbon >= 10
    Poor       pH 4.5–9.0  and organic carbon >= 5
    Critical   otherwise

NPK status (report tables):
    N   Low < 0.3    Good > 0.7
    P   Low < 30     Good > 50
    K   Low < 120    Good > 180
    anything between is Medium

The advisory generator keeps its own NPK breakpoints (_ADVISORY_NPK);
these differ from both tables above and are kept separate on purpose.

Usage:
    from services.scoring_service import derive_scores
    scores = derive_scores(sample)
"""

from __future__ import annotations

from datetime import datetime

from services.schemas import SoilSample, PrimaryCrop


# ── Fertility rating bonuses: (threshold, bonus) ─────────────────────────────
FERTILITY_BASE = 5.0
_FERTILITY_BONUSES: dict[str, tuple[float, float]] = {
    "nitrogen":   (0.5,   1.5),
    "phosphorus": (40.0,  1.5),
    "potassium":  (150.0, 2.0),
}

# ── Soil health bands, in precedence order: (label, ph_min, ph_max, oc_min) ─
_HEALTH_BANDS: list[tuple[str, float, float, float]] = [
    ("Excellent", 6.0, 7.5, 20.0),
    ("Good",      5.5, 8.0, 15.0),
    ("Fair",      5.0, 8.5, 10.0),
    ("Poor",      4.5, 9.0,  5.0),
]

# ── Report NPK thresholds: element → (low_below, good_above) ─────────────────
NPK_THRESHOLDS: dict[str, tuple[float, float]] = {
    "N": (0.3,   0.7),
    "P": (30.0,  50.0),
    "K": (120.0, 180.0),
}

# ── Advisory NPK thresholds: element → (low_below, high_above) ───────────────
_ADVISORY_NPK: dict[str, tuple[float, float]] = {
    "Nitrogen":   (0.3,   0.7),
    "Phosphorus": (30.0,  50.0),
    "Potassium":  (120.0, 200.0),
}

ACIDIC_PH_BELOW    = 5.5
ALKALINE_PH_ABOVE  = 8.0
LOW_ORGANIC_CARBON = 15.0
MAX_RECOMMENDATIONS = 4


def fertility_rating(nitrogen: float | None,
                     phosphorus: float | None,
                     potassium: float | None) -> float:
    """
    Compute the 0–10 fertility rating from NPK values.

    Missing values count as 0. The result is always clamped to [0, 10]
    whatever the inputs (negative or huge values included).
    """
    values = {
        "nitrogen":   float(nitrogen or 0),
        "phosphorus": float(phosphorus or 0),
        "potassium":  float(potassium or 0),
    }
    rating = FERTILITY_BASE
    for key, (threshold, bonus) in _FERTILITY_BONUSES.items():
        if values[key] > threshold:
            rating += bonus
    return max(0.0, min(10.0, rating))


def classify_soil_health(ph: float, organic_carbon: float) -> str:
    """Map pH + organic carbon (g/kg) to one of the five health levels."""
    for label, ph_min, ph_max, oc_min in _HEALTH_BANDS:
        if ph_min <= ph <= ph_max and organic_carbon >= oc_min:
            return label
    return "Critical"


def nutrient_status(value: float, element: str) -> str:
    """Low / Medium / Good for element 'N', 'P' or 'K'."""
    if element not in NPK_THRESHOLDS:
        return "Medium"
    low_below, good_above = NPK_THRESHOLDS[element]
    if value < low_below:
        return "Low"
    if value > good_above:
        return "Good"
    return "Medium"


def derive_scores(sample: SoilSample) -> dict:
    """
    Derive every scored field for a sample.

    Returns:
        dict with keys:
            soil_health       (str)   – Excellent | Good | Fair | Poor | Critical
            fertility_rating  (float) – 0 to 10
            nitrogen_status   (str)   – Low | Medium | Good
            phosphorus_status (str)
            potassium_status  (str)
    """
    return {
        "soil_health":       classify_soil_health(sample.ph, sample.organic_carbon),
        "fertility_rating":  fertility_rating(sample.nitrogen,
                                              sample.phosphorus,
                                              sample.potassium),
        "nitrogen_status":   nutrient_status(sample.nitrogen, "N"),
        "phosphorus_status": nutrient_status(sample.phosphorus, "P"),
        "potassium_status":  nutrient_status(sample.potassium, "K"),
    }


def determine_season(when: datetime) -> str:
    """Cropping season for a date: Jun–Oct Kharif, Nov–Mar Rabi, else Zaid."""
    month = when.month
    if 6 <= month <= 10:
        return "Kharif"
    if month >= 11 or month <= 3:
        return "Rabi"
    return "Zaid"


# ─────────────────────────────────────────────────────────────────────────────
# Advisories
# ─────────────────────────────────────────────────────────────────────────────

_ONBOARDING_ADVICE: list[dict] = [
    {
        "title": "Create Your First Soil Map",
        "desc":  "Start by mapping your farm boundaries and analyzing your soil "
                 "to get personalized recommendations.",
    },
    {
        "title": "Upload Lab Results",
        "desc":  "If you have soil test results from a laboratory, upload them "
                 "for more accurate crop recommendations.",
    },
    {
        "title": "Explore Crop Database",
        "desc":  "Browse through our extensive crop database to learn about "
                 "different crops suitable for your region.",
    },
]


def _advisory_level(value: float, nutrient: str) -> str:
    low_below, high_above = _ADVISORY_NPK[nutrient]
    if value < low_below:
        return "low"
    if value > high_above:
        return "high"
    return "optimal"


def generate_recommendations(sample: SoilSample | None,
                             primary_crop: PrimaryCrop | None) -> list[dict]:
    """
    Build up to four advisory entries, in fixed priority order:
    pH correction → NPK / fertilizer → primary crop → organic matter.

    With no sample (farmer has no analyses yet) the onboarding advice is
    returned instead.

    Returns:
        list of {"kind", "title", "desc"} dicts.
    """
    if sample is None or primary_crop is None:
        return [dict(kind="onboarding", **entry) for entry in _ONBOARDING_ADVICE]

    advice: list[dict] = []

    # ── 1. pH ─────────────────────────────────────────────────────────────
    if sample.ph < ACIDIC_PH_BELOW:
        advice.append({
            "kind":  "ph",
            "title": "Soil pH Too Acidic",
            "desc":  f"Current pH is {sample.ph:g}. Apply lime (calcium carbonate) "
                     "at 2-3 tons per acre to raise pH to optimal range (6.0-7.0).",
        })
    elif sample.ph > ALKALINE_PH_ABOVE:
        advice.append({
            "kind":  "ph",
            "title": "Soil pH Too Alkaline",
            "desc":  f"Current pH is {sample.ph:g}. Apply sulfur or gypsum to lower "
                     "pH. Add organic matter to improve soil structure.",
        })
    else:
        advice.append({
            "kind":  "ph",
            "title": "Optimal pH Level",
            "desc":  f"Your soil pH ({sample.ph:g}) is in the ideal range. "
                     "Continue current soil management practices.",
        })

    # ── 2. NPK ────────────────────────────────────────────────────────────
    levels = {
        "Nitrogen":   _advisory_level(sample.nitrogen, "Nitrogen"),
        "Phosphorus": _advisory_level(sample.phosphorus, "Phosphorus"),
        "Potassium":  _advisory_level(sample.potassium, "Potassium"),
    }
    deficient = [name for name, level in levels.items() if level == "low"]
    if deficient:
        advice.append({
            "kind":  "npk",
            "title": "Fertilizer Application Needed",
            "desc":  f"{', '.join(deficient)} levels are low. Apply "
                     f"{primary_crop.fertilizer} at recommended rates before sowing.",
        })
    else:
        advice.append({
            "kind":  "npk",
            "title": "Balanced Nutrient Levels",
            "desc":  "NPK levels are well-balanced. Maintain with regular "
                     f"application of {primary_crop.fertilizer}.",
        })

    # ── 3. Primary crop ──────────────────────────────────────────────────
    advice.append({
        "kind":  "crop",
        "title": f"Best Crop: {primary_crop.name}",
        "desc":  f"Based on your soil conditions (pH: {sample.ph:g}, "
                 f"{sample.soil_type}), {primary_crop.name} has "
                 f"{primary_crop.match_score:.0f}% compatibility. "
                 "Expected yield: High with proper care.",
    })

    # ── 4. Organic matter ────────────────────────────────────────────────
    if sample.organic_carbon < LOW_ORGANIC_CARBON:
        advice.append({
            "kind":  "organic_matter",
            "title": "Improve Organic Matter",
            "desc":  f"Current organic carbon is {sample.organic_carbon:g} g/kg. "
                     "Add compost, green manure, or crop residues to improve "
                     "soil health and water retention.",
        })

    return advice[:MAX_RECOMMENDATIONS]
