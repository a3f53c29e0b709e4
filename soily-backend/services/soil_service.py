"""
services/soil_service.py
------------------------
Soil Service — returns simulated soil properties for a field's centre point
and combines them with a rainfall/temperature estimate into a full SoilSample.

In production this would call an external API such as:
  - SoilGrids (https://soilgrids.org/) by ISRIC
  - ICAR National Bureau of Soil Survey API

For this implementation, deterministic logic based on Maharashtra latitude
bands is used, so the same boundary always previews the same analysis.

Usage:
    from services.soil_service import simulate_sample
    sample, color = simulate_sample(19.99, 73.78)
"""

from __future__ import annotations

from services.schemas import SoilSample, SoilColor

# (min latitude, longitude filter, annual rainfall mm, mean temperature °C);
# first match wins, anything south of the Deccan falls to the Konkan coast.
_CLIMATE_BANDS = (
    (20.0, lambda lng: lng <= 74.5, 850.0, 25.5),    # Nashik foothills
    (18.5, lambda lng: lng >= 73.5, 710.0, 27.0),    # Pune plateau
    (17.5, lambda lng: True,        520.0, 28.5),    # southern Deccan
)
_COAST_CLIMATE = (2500.0, 27.0)


def get_soil_data(latitude: float, longitude: float) -> dict:
    """
    Return soil properties for the given GPS coordinate.

    Latitude bands (Maharashtra, India):
        >= 20.5  → Vidarbha / northern MH  → black cotton soil (Clay)
        >= 19.0  → Nashik / Pune belt      → red laterite (Clay Loam)
        >= 17.5  → river valleys           → alluvial (Silty Loam)
        < 17.5   → southern MH             → Sandy Loam

    Returns:
        dict with keys:
            soil_type      (str)   – one of the SoilSample soil types
            ph             (float) – pH scale 0–14
            nitrogen       (float) – g/kg
            phosphorus     (float) – kg/ha
            potassium      (float) – kg/ha
            organic_carbon (float) – g/kg
            clay, sand     (float) – %
            bulk_density   (float) – g/cm³
            cec            (float) – cmol/kg
            color_rgb, color_description (str)
    """
    lat = float(latitude)
    lng = float(longitude)

    # ── Soil classification by latitude band ──────────────────────────────
    if lat >= 20.5:
        props = {
            "soil_type": "Clay", "ph": 7.8, "nitrogen": 0.55, "phosphorus": 38.0,
            "potassium": 210.0, "organic_carbon": 16.0, "clay": 52.0, "sand": 18.0,
            "bulk_density": 1.35, "cec": 45.0,
            "color_rgb": "rgb(58, 52, 48)", "color_description": "Very dark greyish brown",
        }
    elif lat >= 19.0:
        props = {
            "soil_type": "Clay Loam", "ph": 6.5, "nitrogen": 0.28, "phosphorus": 24.0,
            "potassium": 140.0, "organic_carbon": 9.5, "clay": 34.0, "sand": 32.0,
            "bulk_density": 1.42, "cec": 18.0,
            "color_rgb": "rgb(150, 75, 50)", "color_description": "Reddish brown",
        }
    elif lat >= 17.5:
        props = {
            "soil_type": "Silty Loam", "ph": 7.2, "nitrogen": 0.82, "phosphorus": 56.0,
            "potassium": 190.0, "organic_carbon": 21.0, "clay": 22.0, "sand": 25.0,
            "bulk_density": 1.30, "cec": 28.0,
            "color_rgb": "rgb(110, 90, 70)", "color_description": "Dark yellowish brown",
        }
    else:
        props = {
            "soil_type": "Sandy Loam", "ph": 6.8, "nitrogen": 0.22, "phosphorus": 32.0,
            "potassium": 105.0, "organic_carbon": 6.0, "clay": 12.0, "sand": 64.0,
            "bulk_density": 1.55, "cec": 9.0,
            "color_rgb": "rgb(175, 140, 100)", "color_description": "Light brown",
        }

    # Fine-tune pH using the fractional part of longitude (±0.1 variance)
    ph_tweak    = (lng % 1.0) * 0.2 - 0.1
    props["ph"] = max(4.5, min(9.0, round(props["ph"] + ph_tweak, 2)))
    return props


def estimate_climate(latitude: float, longitude: float) -> tuple[float, float]:
    """Annual rainfall (mm) and mean temperature (°C) for a point."""
    lat, lng = float(latitude), float(longitude)
    rainfall, temperature = next(
        ((rain, temp) for min_lat, lng_ok, rain, temp in _CLIMATE_BANDS
         if lat >= min_lat and lng_ok(lng)),
        _COAST_CLIMATE,
    )
    # longitude fraction shifts rainfall by up to 25 mm either way
    rainfall = max(200.0, rainfall + int((lng % 1.0) * 50 - 25))
    return rainfall, temperature


def simulate_sample(latitude: float, longitude: float) -> tuple[SoilSample, SoilColor]:
    """Soil + climate estimate at one point, as a SoilSample and its colour."""
    soil = get_soil_data(latitude, longitude)
    rainfall, temperature = estimate_climate(latitude, longitude)

    sample = SoilSample(
        ph             = soil["ph"],
        nitrogen       = soil["nitrogen"],
        phosphorus     = soil["phosphorus"],
        potassium      = soil["potassium"],
        organic_carbon = soil["organic_carbon"],
        clay           = soil["clay"],
        sand           = soil["sand"],
        bulk_density   = soil["bulk_density"],
        cec            = soil["cec"],
        soil_type      = soil["soil_type"],
        rainfall       = rainfall,
        temperature    = temperature,
    )
    color = SoilColor(rgb=soil["color_rgb"], description=soil["color_description"])
    return sample, color
