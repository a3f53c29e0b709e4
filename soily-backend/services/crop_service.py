"""
services/crop_service.py
------------------------
Crop matcher — ranks a fixed table of crops commonly grown in Western
Maharashtra against a soil sample and picks a primary crop plus ranked
alternatives.

Per-crop score (0–100):
    pH            30 %
    temperature   25 %
    rainfall      25 %
    soil type     20 %

Each range factor scores 0.6–1.0 when the value falls inside the crop's
range (1.0 at the midpoint), 0.3 for a near miss, 0 otherwise. Soil type
scores 1.0 for a preferred texture, 0.4 for anything else.

Usage:
    from services.crop_service import recommend_crops
    rec = recommend_crops(sample)
    rec.primary.name, rec.primary.match_score
"""

from __future__ import annotations

from services.schemas import (
    SoilSample, CropRecommendation, CropMatch, PrimaryCrop, ValidationError,
)


# ── Weights ───────────────────────────────────────────────────────────────────
W_PH       = 0.30
W_TEMP     = 0.25
W_RAINFALL = 0.25
W_SOIL     = 0.20

# How far outside a range still counts as a near miss
_NEAR_MISS: dict[str, float] = {
    "ph":          0.5,
    "temperature": 5.0,
    "rainfall":    200.0,
}

# ── Crop profiles ─────────────────────────────────────────────────────────────
# ph / temp (°C) / rain (mm per year) are (min, max) ranges.
CROP_PROFILES: list[dict] = [
    {"name": "Rice",       "ph": (5.0, 7.0), "temp": (20, 35), "rain": (1000, 2500),
     "soils": ("Clay", "Clay Loam", "Silty Loam"),
     "fertilizer": "Urea + DAP (120:60:40 NPK kg/ha)",    "seasons": ("Kharif",)},
    {"name": "Wheat",      "ph": (6.0, 7.5), "temp": (12, 25), "rain": (400, 900),
     "soils": ("Loam", "Clay Loam", "Silty Loam"),
     "fertilizer": "Urea + SSP + MOP (120:60:40 NPK kg/ha)", "seasons": ("Rabi",)},
    {"name": "Jowar",      "ph": (6.0, 8.0), "temp": (25, 35), "rain": (400, 1000),
     "soils": ("Clay", "Clay Loam", "Loam"),
     "fertilizer": "Urea + DAP (80:40:40 NPK kg/ha)",     "seasons": ("Kharif", "Rabi")},
    {"name": "Bajra",      "ph": (6.5, 8.0), "temp": (25, 35), "rain": (250, 700),
     "soils": ("Sandy", "Sandy Loam", "Loam"),
     "fertilizer": "Urea + SSP (60:30:0 NPK kg/ha)",      "seasons": ("Kharif",)},
    {"name": "Cotton",     "ph": (6.0, 8.0), "temp": (21, 35), "rain": (500, 1000),
     "soils": ("Clay", "Clay Loam", "Loam"),
     "fertilizer": "NPK 19:19:19 + Urea top dressing",    "seasons": ("Kharif",)},
    {"name": "Sugarcane",  "ph": (6.5, 7.5), "temp": (20, 35), "rain": (1000, 1500),
     "soils": ("Clay Loam", "Loam", "Clay"),
     "fertilizer": "Urea + SSP + MOP (250:115:115 NPK kg/ha)", "seasons": ("Year-round",)},
    {"name": "Soybean",    "ph": (6.0, 7.5), "temp": (20, 30), "rain": (600, 1000),
     "soils": ("Loam", "Clay Loam", "Silty Loam"),
     "fertilizer": "DAP + MOP (30:60:40 NPK kg/ha) with Rhizobium", "seasons": ("Kharif",)},
    {"name": "Groundnut",  "ph": (6.0, 7.5), "temp": (22, 32), "rain": (500, 1000),
     "soils": ("Sandy Loam", "Sandy", "Loam"),
     "fertilizer": "SSP + Gypsum (25:50:0 NPK kg/ha)",    "seasons": ("Kharif", "Zaid")},
    {"name": "Tur",        "ph": (6.5, 7.5), "temp": (20, 30), "rain": (600, 1000),
     "soils": ("Loam", "Clay Loam", "Sandy Loam"),
     "fertilizer": "DAP (20:50:0 NPK kg/ha)",             "seasons": ("Kharif",)},
    {"name": "Gram",       "ph": (6.0, 8.0), "temp": (15, 25), "rain": (300, 700),
     "soils": ("Loam", "Clay Loam", "Clay"),
     "fertilizer": "DAP (20:40:0 NPK kg/ha)",             "seasons": ("Rabi",)},
    {"name": "Onion",      "ph": (6.0, 7.5), "temp": (13, 30), "rain": (500, 800),
     "soils": ("Loam", "Sandy Loam", "Silty Loam"),
     "fertilizer": "NPK 10:26:26 + Urea (100:50:50 NPK kg/ha)", "seasons": ("Rabi", "Kharif")},
    {"name": "Maize",      "ph": (5.5, 7.5), "temp": (18, 32), "rain": (500, 1000),
     "soils": ("Loam", "Sandy Loam", "Silty Loam"),
     "fertilizer": "Urea + DAP + MOP (120:60:40 NPK kg/ha)", "seasons": ("Kharif", "Rabi")},
    {"name": "Grapes",     "ph": (6.5, 8.0), "temp": (15, 35), "rain": (500, 900),
     "soils": ("Sandy Loam", "Loam", "Clay Loam"),
     "fertilizer": "NPK 12:61:0 + Potassium Sulphate",    "seasons": ("Year-round",)},
    {"name": "Pomegranate", "ph": (6.5, 8.0), "temp": (25, 38), "rain": (300, 700),
     "soils": ("Sandy Loam", "Loam", "Sandy"),
     "fertilizer": "NPK 19:19:19 + FYM",                   "seasons": ("Year-round",)},
    {"name": "Mango",      "ph": (5.5, 7.5), "temp": (24, 30), "rain": (750, 2500),
     "soils": ("Loam", "Clay Loam", "Sandy Loam"),
     "fertilizer": "FYM + NPK (100:50:100 g/tree/year)",   "seasons": ("Year-round",)},
    {"name": "Cashew",     "ph": (4.5, 6.5), "temp": (20, 35), "rain": (1000, 3000),
     "soils": ("Sandy Loam", "Sandy", "Other"),
     "fertilizer": "Urea + Rock Phosphate + MOP",          "seasons": ("Year-round",)},
]


def _range_score(value: float, low: float, high: float, near_miss: float) -> float:
    if low <= value <= high:
        mid        = (low + high) / 2
        half_width = (high - low) / 2
        closeness  = 1.0 - abs(value - mid) / half_width if half_width else 1.0
        return 0.6 + 0.4 * closeness
    gap = low - value if value < low else value - high
    return 0.3 if gap <= near_miss else 0.0


def score_crop(profile: dict, sample: SoilSample) -> float:
    """Score one crop profile against a sample. Returns 0–100 (1 dp)."""
    ph_score   = _range_score(sample.ph, *profile["ph"], _NEAR_MISS["ph"])
    temp_score = _range_score(sample.temperature, *profile["temp"],
                              _NEAR_MISS["temperature"])
    rain_score = _range_score(sample.rainfall, *profile["rain"],
                              _NEAR_MISS["rainfall"])
    soil_score = 1.0 if sample.soil_type in profile["soils"] else 0.4

    total = (ph_score * W_PH + temp_score * W_TEMP
             + rain_score * W_RAINFALL + soil_score * W_SOIL)
    return round(min(1.0, total) * 100, 1)


def recommend_crops(sample: SoilSample, limit: int = 5) -> CropRecommendation:
    """
    Rank every crop profile and return the best as primary plus up to
    `limit` alternatives, highest score first. Equal scores keep table order.
    """
    scored = [(score_crop(p, sample), idx, p) for idx, p in enumerate(CROP_PROFILES)]
    scored.sort(key=lambda item: (-item[0], item[1]))

    best_score, _, best = scored[0]
    primary = PrimaryCrop(
        name        = best["name"],
        match_score = best_score,
        fertilizer  = best["fertilizer"],
    )
    alternatives = [
        CropMatch(name=p["name"], match_score=score)
        for score, _, p in scored[1:1 + max(0, limit)]
    ]
    return CropRecommendation(primary=primary, alternatives=alternatives)


def normalise_recommendation(rec: CropRecommendation) -> CropRecommendation:
    """
    Validate a client-supplied recommendation.

    Alternatives are re-sorted by descending score; the primary crop must
    score at least as high as every alternative.

    Raises:
        ValidationError: a score outside [0, 100] or a primary outscored
                         by one of its alternatives.
    """
    scores = [rec.primary.match_score] + [c.match_score for c in rec.alternatives]
    if any(s < 0 or s > 100 for s in scores):
        raise ValidationError("matchScore", "match scores must be between 0 and 100")

    alternatives = sorted(rec.alternatives, key=lambda c: c.match_score, reverse=True)
    if alternatives and alternatives[0].match_score > rec.primary.match_score:
        raise ValidationError(
            "cropRecommendation",
            f"primary crop {rec.primary.name} scores below alternative "
            f"{alternatives[0].name}",
        )
    return CropRecommendation(primary=rec.primary, alternatives=alternatives)
