"""
services/schemas.py
-------------------
Typed records for farmers and soil analyses, plus the boundary-side parsers
that turn raw request JSON into them.

Every record that reaches the scoring, aggregation or report services is
one of the dataclasses below. Parsing happens once, at the HTTP boundary;
the services never re-check shapes.

Parsers raise ValidationError(field, message) on the first problem found.
The Flask layer maps that to a 400 response carrying the field name.

Usage:
    from services.schemas import parse_soil_sample, ValidationError
    sample = parse_soil_sample(body["soilProperties"], body["climateData"])
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone


# ── Enumerations ─────────────────────────────────────────────────────────────

SOIL_TYPES = (
    "Clay", "Sandy", "Silty", "Clay Loam",
    "Sandy Loam", "Silty Loam", "Loam", "Other",
)
SEASONS        = ("Kharif", "Rabi", "Zaid", "Year-round")
DATA_SOURCES   = ("SoilGrids API", "Simulated", "Manual Entry", "Satellite Analysis")
SOIL_HEALTH    = ("Excellent", "Good", "Fair", "Poor", "Critical")

FARM_SIZES = ("small", "medium", "large", "xlarge")
FARM_SOIL_TYPES = (
    "Alluvial", "Black", "Red", "Laterite",
    "Desert", "Mountain", "Mixed", "Other",
)
IRRIGATION_TYPES   = ("Drip", "Sprinkler", "Flood", "Rainfed", "Mixed", "Other")
SUBSCRIPTION_TYPES = ("free", "basic", "premium", "enterprise")
SUBSCRIPTION_STATUSES = ("active", "expired", "cancelled")

LANGUAGES: dict[str, str] = {
    "en": "English",
    "hi": "Hindi (हिंदी)",
    "mr": "Marathi (मराठी)",
    "gu": "Gujarati (ગુજરાતી)",
    "pa": "Punjabi (ਪੰਜਾਬੀ)",
    "ta": "Tamil (தமிழ்)",
    "te": "Telugu (తెలుగు)",
    "bn": "Bengali (বাংলা)",
    "kn": "Kannada (ಕನ್ನಡ)",
    "ml": "Malayalam (മലയാളം)",
    "or": "Odia (ଓଡ଼ିଆ)",
    "as": "Assamese (অসমীয়া)",
    "ur": "Urdu (اردو)",
}

FARM_SIZE_DESCRIPTIONS: dict[str, str] = {
    "small":  "Less than 2 acres",
    "medium": "2-10 acres",
    "large":  "10-50 acres",
    "xlarge": "More than 50 acres",
}

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[6-9]\d{9}$")

MIN_PASSWORD_LENGTH = 8
MAX_NOTES_LENGTH    = 1000


class ValidationError(ValueError):
    """A request field failed validation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field   = field
        self.message = message


# ─────────────────────────────────────────────────────────────────────────────
# Soil analysis records
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class SoilSample:
    ph:             float
    nitrogen:       float
    phosphorus:     float
    potassium:      float
    organic_carbon: float
    clay:           float
    soil_type:      str
    rainfall:       float
    temperature:    float
    sand:           float | None = None
    bulk_density:   float | None = None
    cec:            float | None = None


@dataclass
class BoundaryGeometry:
    coordinates:      list[tuple[float, float]]   # (longitude, latitude)
    area:             float                       # acres
    perimeter:        float                       # km
    center_latitude:  float
    center_longitude: float


@dataclass
class CropMatch:
    name:        str
    match_score: float


@dataclass
class PrimaryCrop:
    name:        str
    match_score: float
    fertilizer:  str


@dataclass
class CropRecommendation:
    primary:      PrimaryCrop
    alternatives: list[CropMatch] = field(default_factory=list)


@dataclass
class SoilColor:
    rgb:         str
    description: str


@dataclass
class SoilAnalysis:
    farmer_id:           int
    boundary:            BoundaryGeometry
    sample:              SoilSample
    crop_recommendation: CropRecommendation
    soil_health:         str
    fertility_rating:    float
    analysis_date:       datetime
    season:              str
    data_source:         str = "SoilGrids API"
    notes:               str | None = None
    soil_color:          SoilColor | None = None
    is_archived:         bool = False
    report_viewed:       bool = False
    report_downloaded:   bool = False
    download_count:      int = 0
    id:                  int | None = None
    created_at:          datetime | None = None
    updated_at:          datetime | None = None

    @property
    def formatted_date(self) -> str:
        """e.g. '5 March 2025' (en-IN long date)."""
        return f"{self.analysis_date.day} {self.analysis_date:%B %Y}"

    @property
    def npk_summary(self) -> str:
        s = self.sample
        return f"N: {s.nitrogen:g}, P: {s.phosphorus:g}, K: {s.potassium:g}"

    def to_dict(self) -> dict:
        """JSON-ready representation used by every API response."""
        b, s, rec = self.boundary, self.sample, self.crop_recommendation
        return {
            "id":        self.id,
            "farmer_id": self.farmer_id,
            "boundary": {
                "coordinates":  [list(p) for p in b.coordinates],
                "area":         b.area,
                "perimeter":    b.perimeter,
                "center_point": {
                    "latitude":  b.center_latitude,
                    "longitude": b.center_longitude,
                },
            },
            "soil_properties": {
                "ph":             s.ph,
                "nitrogen":       s.nitrogen,
                "phosphorus":     s.phosphorus,
                "potassium":      s.potassium,
                "organic_carbon": s.organic_carbon,
                "clay":           s.clay,
                "sand":           s.sand,
                "bulk_density":   s.bulk_density,
                "cec":            s.cec,
                "soil_type":      s.soil_type,
            },
            "climate_data": {
                "rainfall":    s.rainfall,
                "temperature": s.temperature,
            },
            "soil_color": (
                {"rgb": self.soil_color.rgb,
                 "description": self.soil_color.description}
                if self.soil_color else None
            ),
            "crop_recommendation": {
                "primary_crop": {
                    "name":        rec.primary.name,
                    "match_score": rec.primary.match_score,
                    "fertilizer":  rec.primary.fertilizer,
                },
                "alternative_crops": [
                    {"name": c.name, "match_score": c.match_score}
                    for c in rec.alternatives
                ],
            },
            "soil_health":       self.soil_health,
            "fertility_rating":  self.fertility_rating,
            "analysis_date":     _iso(self.analysis_date),
            "formatted_date":    self.formatted_date,
            "season":            self.season,
            "data_source":       self.data_source,
            "notes":             self.notes,
            "npk_summary":       self.npk_summary,
            "is_archived":       self.is_archived,
            "report_viewed":     self.report_viewed,
            "report_downloaded": self.report_downloaded,
            "download_count":    self.download_count,
            "created_at":        _iso(self.created_at),
            "updated_at":        _iso(self.updated_at),
        }


# ─────────────────────────────────────────────────────────────────────────────
# Farmer records
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class Subscription:
    type:       str = "free"
    status:     str = "active"
    start_date: datetime | None = None
    end_date:   datetime | None = None


@dataclass
class Farmer:
    full_name:          str
    email:              str
    phone:              str
    location:           str
    farm_size:          str
    password_hash:      str = ""
    preferred_language: str = "en"
    is_active:          bool = True
    is_verified:        bool = False
    address:            dict = field(default_factory=lambda: {"country": "India"})
    crops:              list[dict] = field(default_factory=list)
    soil_type:          str | None = None
    irrigation_type:    str | None = None
    farming_experience: int | None = None
    notifications:      dict = field(
        default_factory=lambda: {"email": True, "sms": True, "push": True}
    )
    subscription:       Subscription = field(default_factory=Subscription)
    profile_image:      str | None = None
    notes:              str | None = None
    last_login:         datetime | None = None
    id:                 int | None = None
    created_at:         datetime | None = None
    updated_at:         datetime | None = None

    @property
    def farm_size_description(self) -> str:
        return FARM_SIZE_DESCRIPTIONS.get(self.farm_size, "Unknown")

    @property
    def language_name(self) -> str:
        return LANGUAGES.get(self.preferred_language, "English")

    def has_premium_access(self) -> bool:
        return self.subscription.type in ("premium", "enterprise")

    def is_subscription_active(self, now: datetime) -> bool:
        if self.subscription.type == "free":
            return True
        end = self.subscription.end_date
        return (self.subscription.status == "active"
                and end is not None and end > now)

    def public_profile(self) -> dict:
        return {
            "id":                    self.id,
            "full_name":             self.full_name,
            "email":                 self.email,
            "phone":                 self.phone,
            "location":              self.location,
            "farm_size":             self.farm_size,
            "farm_size_description": self.farm_size_description,
            "preferred_language":    self.preferred_language,
            "language_name":         self.language_name,
            "profile_image":         self.profile_image,
            "is_verified":           self.is_verified,
            "created_at":            _iso(self.created_at),
        }

    def to_dict(self) -> dict:
        """Full record minus the password hash."""
        data = self.public_profile()
        data.update({
            "is_active":          self.is_active,
            "address":            self.address,
            "crops":              self.crops,
            "soil_type":          self.soil_type,
            "irrigation_type":    self.irrigation_type,
            "farming_experience": self.farming_experience,
            "notifications":      self.notifications,
            "subscription": {
                "type":       self.subscription.type,
                "status":     self.subscription.status,
                "start_date": _iso(self.subscription.start_date),
                "end_date":   _iso(self.subscription.end_date),
                "is_active":  self.is_subscription_active(datetime.now(timezone.utc)),
                "has_premium_access": self.has_premium_access(),
            },
            "notes":      self.notes,
            "last_login": _iso(self.last_login),
            "updated_at": _iso(self.updated_at),
        })
        return data


# ─────────────────────────────────────────────────────────────────────────────
# Parsers (request JSON → records)
# ─────────────────────────────────────────────────────────────────────────────

def parse_soil_sample(soil: dict | None, climate: dict | None) -> SoilSample:
    """Build a SoilSample from the client's soilProperties + climateData."""
    if not isinstance(soil, dict):
        raise ValidationError("soilProperties", "soilProperties is required")
    if not isinstance(climate, dict):
        raise ValidationError("climateData", "climateData is required")

    soil_type = soil.get("soilType")
    if soil_type not in SOIL_TYPES:
        raise ValidationError(
            "soilType", f"soilType must be one of: {', '.join(SOIL_TYPES)}"
        )

    return SoilSample(
        ph             = _number(soil, "pH", low=0, high=14),
        nitrogen       = _number(soil, "nitrogen", low=0),
        phosphorus     = _number(soil, "phosphorus", low=0),
        potassium      = _number(soil, "potassium", low=0),
        organic_carbon = _number(soil, "organicCarbon", low=0),
        clay           = _number(soil, "clay", low=0, high=100),
        sand           = _number(soil, "sand", low=0, high=100, required=False),
        bulk_density   = _number(soil, "bulkDensity", low=0, required=False),
        cec            = _number(soil, "cec", low=0, required=False),
        soil_type      = soil_type,
        rainfall       = _number(climate, "rainfall", low=0),
        temperature    = _number(climate, "temperature", low=-60, high=60),
    )


def parse_coordinates(raw) -> list[tuple[float, float]]:
    """Accept [[lng, lat], ...] and return a list of float tuples."""
    if not isinstance(raw, list) or not raw:
        raise ValidationError("coordinates", "coordinates must be a non-empty list")
    points = []
    for idx, pair in enumerate(raw):
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise ValidationError(
                "coordinates", f"point {idx} must be a [longitude, latitude] pair"
            )
        try:
            lng, lat = float(pair[0]), float(pair[1])
        except (TypeError, ValueError):
            raise ValidationError("coordinates", f"point {idx} is not numeric")
        if not (-180 <= lng <= 180) or not (-90 <= lat <= 90):
            raise ValidationError("coordinates", f"point {idx} is out of range")
        points.append((lng, lat))
    return points


def parse_crop_recommendation(raw: dict | None) -> CropRecommendation | None:
    """Parse the optional client-side recommendation. None when absent."""
    if raw is None:
        return None
    if not isinstance(raw, dict) or not isinstance(raw.get("primaryCrop"), dict):
        raise ValidationError("cropRecommendation", "primaryCrop is required")

    primary_raw = raw["primaryCrop"]
    name        = _text(primary_raw, "name", max_len=100)
    fertilizer  = _text(primary_raw, "fertilizer", max_len=200)
    primary = PrimaryCrop(
        name        = name,
        match_score = _number(primary_raw, "matchScore", low=0, high=100),
        fertilizer  = fertilizer,
    )

    alternatives = []
    for alt in raw.get("alternativeCrops") or []:
        if not isinstance(alt, dict):
            raise ValidationError("alternativeCrops", "each alternative must be an object")
        alternatives.append(CropMatch(
            name        = _text(alt, "name", max_len=100),
            match_score = _number(alt, "matchScore", low=0, high=100),
        ))
    return CropRecommendation(primary=primary, alternatives=alternatives)


def parse_soil_color(raw: dict | None) -> SoilColor | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise ValidationError("soilColor", "soilColor must be an object")
    return SoilColor(
        rgb         = _text(raw, "rgb", max_len=50),
        description = _text(raw, "description", max_len=200),
    )


def parse_analysis_date(raw) -> datetime:
    if raw in (None, ""):
        return datetime.now(timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("analysisDate", "analysisDate must be an ISO-8601 date")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_choice(data: dict, key: str, choices, default=None, required=False):
    value = data.get(key)
    if value in (None, ""):
        if required:
            raise ValidationError(key, f"{key} is required")
        return default
    if value not in choices:
        raise ValidationError(key, f"{key} must be one of: {', '.join(choices)}")
    return value


def parse_notes(value) -> str | None:
    if value is None:
        return None
    text = str(value)
    if len(text) > MAX_NOTES_LENGTH:
        raise ValidationError("notes", f"notes cannot exceed {MAX_NOTES_LENGTH} characters")
    return text


_ADDRESS_KEYS = ("street", "city", "state", "pincode", "country")


def parse_address(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("address", "address must be an object")
    address = {k: str(raw[k]).strip() for k in _ADDRESS_KEYS if raw.get(k) not in (None, "")}
    pincode = address.get("pincode")
    if pincode is not None and not re.fullmatch(r"\d{6}", pincode):
        raise ValidationError("pincode", "pincode must be 6 digits")
    address.setdefault("country", "India")
    return address


def parse_farm_crops(raw) -> list[dict]:
    """Crops the farmer grows: [{name, season, area}]."""
    if not isinstance(raw, list):
        raise ValidationError("crops", "crops must be a list")
    crops = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("crops", "each crop must be an object")
        crops.append({
            "name":   _text(item, "name", max_len=100),
            "season": parse_choice(item, "season", SEASONS),
            "area":   _number(item, "area", low=0, required=False),
        })
    return crops


def parse_experience(raw) -> int | None:
    if raw in (None, ""):
        return None
    years = _number({"farmingExperience": raw}, "farmingExperience", low=0)
    return int(years)


def parse_notifications(raw) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("notifications", "notifications must be an object")
    flags = {"email": True, "sms": True, "push": True}
    for key in flags:
        if key in raw:
            flags[key] = parse_bool(raw[key], key)
    return flags


def parse_bool(raw, field_name: str) -> bool:
    if isinstance(raw, bool):
        return raw
    raise ValidationError(field_name, f"{field_name} must be true or false")


def parse_id_list(raw, field_name: str) -> list[int]:
    if not isinstance(raw, list):
        raise ValidationError(field_name, f"Invalid {field_name}")
    ids = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, (int, str)):
            raise ValidationError(field_name, f"Invalid {field_name}")
        try:
            ids.append(int(value))
        except ValueError:
            raise ValidationError(field_name, f"Invalid {field_name}")
    return ids


def normalise_email(raw) -> str:
    email = str(raw or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("email", "Invalid email format")
    return email


def normalise_phone(raw) -> str:
    phone = re.sub(r"\s", "", str(raw or ""))
    if not _PHONE_RE.match(phone):
        raise ValidationError("phone", "Invalid phone number format")
    return phone


def validate_full_name(raw) -> str:
    name = str(raw or "").strip()
    if not 3 <= len(name) <= 100:
        raise ValidationError("fullName", "Name must be 3-100 characters long")
    return name


def validate_location(raw) -> str:
    location = str(raw or "").strip()
    if not location:
        raise ValidationError("location", "Farm location is required")
    if len(location) > 200:
        raise ValidationError("location", "Location cannot exceed 200 characters")
    return location


def validate_password(raw, field_name: str = "password") -> str:
    password = str(raw or "")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            field_name,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )
    return password


# ── Helpers ───────────────────────────────────────────────────────────────────

def _number(data: dict, key: str, low: float | None = None,
            high: float | None = None, required: bool = True) -> float | None:
    value = data.get(key)
    if value in (None, ""):
        if required:
            raise ValidationError(key, f"{key} is required")
        return None
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(key, f"{key} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(key, f"{key} must be a number")
    if not math.isfinite(number):
        raise ValidationError(key, f"{key} must be a number")
    if low is not None and number < low:
        raise ValidationError(key, f"{key} must be >= {low}")
    if high is not None and number > high:
        raise ValidationError(key, f"{key} must be <= {high}")
    return number


def _text(data: dict, key: str, max_len: int) -> str:
    value = str(data.get(key) or "").strip()
    if not value:
        raise ValidationError(key, f"{key} is required")
    if len(value) > max_len:
        raise ValidationError(key, f"{key} cannot exceed {max_len} characters")
    return value


def _iso(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value else None
