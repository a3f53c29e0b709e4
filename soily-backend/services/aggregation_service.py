"""
services/aggregation_service.py
-------------------------------
Aggregation Service — per-farmer statistics, seasonal trends, dashboard
cards, recent-activity feed and the admin console's platform statistics.

All functions take already-loaded records and return plain dicts ready for
jsonify(). Nothing here queries the database or caches; callers decide which
analyses to pass in (the farmer endpoints pass non-archived ones only).

Usage:
    from services.aggregation_service import farmer_stats
    stats = farmer_stats(analyses)
    if not stats["has_data"]:
        ...
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Sequence

import numpy as np
from dateutil.relativedelta import relativedelta

from services.schemas import Farmer, SoilAnalysis


# Stats returned for a farmer with no analyses
NO_DATA: dict = {
    "has_data":             False,
    "total_analyses":       0,
    "total_area_analyzed":  0.0,
    "average_ph":           None,
    "average_fertility":    None,
    "most_recommended_crop": None,
    "latest_analysis":      None,
    "crop_distribution":    {},
}

# Dashboard farm area (acres) by declared size when nothing has been mapped yet
FARM_SIZE_AREA: dict[str, float] = {
    "small":  2.0,
    "medium": 6.0,
    "large":  30.0,
    "xlarge": 100.0,
}

RECENT_ACTIVITY_LIMIT = 5
TOP_CROPS_LIMIT       = 8
PH_REGIONS_LIMIT      = 10
TREND_MONTHS          = 6


def _mean(values) -> float:
    return float(np.mean(values))


def _first_max(counts: dict[str, int]) -> str:
    """Key with the highest count; equal counts keep insertion order."""
    best = None
    for key, count in counts.items():
        if best is None or count > counts[best]:
            best = key
    return best


def _distribution(values) -> list[dict]:
    """[{"name", "count"}] sorted by count desc, ties in first-seen order."""
    counts = Counter(v for v in values if v is not None)
    return [{"name": name, "count": count} for name, count in counts.most_common()]


# ─────────────────────────────────────────────────────────────────────────────
# Farmer-level aggregates
# ─────────────────────────────────────────────────────────────────────────────

def farmer_stats(analyses: Sequence[SoilAnalysis]) -> dict:
    """
    Summarise a farmer's analyses.

    Returns:
        dict with keys:
            has_data              (bool)
            total_analyses        (int)
            total_area_analyzed   (float) – acres, 2 dp
            average_ph            (float) – 2 dp
            average_fertility     (float) – 1 dp
            most_recommended_crop (str)   – ties go to the first seen
            latest_analysis       (str)   – ISO date of the newest analysis
            crop_distribution     (dict)  – crop name → count
    """
    if not analyses:
        return dict(NO_DATA, crop_distribution={})

    crop_distribution: dict[str, int] = {}
    for analysis in analyses:
        crop = analysis.crop_recommendation.primary.name
        crop_distribution[crop] = crop_distribution.get(crop, 0) + 1

    latest = max(a.analysis_date for a in analyses)

    return {
        "has_data":              True,
        "total_analyses":        len(analyses),
        "total_area_analyzed":   round(sum(a.boundary.area for a in analyses), 2),
        "average_ph":            round(_mean([a.sample.ph for a in analyses]), 2),
        "average_fertility":     round(_mean([a.fertility_rating for a in analyses]), 1),
        "most_recommended_crop": _first_max(crop_distribution),
        "latest_analysis":       latest.isoformat(timespec="seconds"),
        "crop_distribution":     crop_distribution,
    }


def seasonal_trends(analyses: Sequence[SoilAnalysis]) -> list[dict]:
    """Group by season (first-seen order); means are not rounded."""
    groups: dict[str, list[SoilAnalysis]] = {}
    for analysis in analyses:
        groups.setdefault(analysis.season, []).append(analysis)

    return [
        {
            "season":            season,
            "count":             len(items),
            "average_ph":        _mean([a.sample.ph for a in items]),
            "average_fertility": _mean([a.fertility_rating for a in items]),
            "crops":             [a.crop_recommendation.primary.name for a in items],
        }
        for season, items in groups.items()
    ]


def dashboard_stats(farmer: Farmer, analyses: Sequence[SoilAnalysis]) -> dict:
    """Dashboard cards. `analyses` are the farmer's non-archived analyses."""
    stats  = farmer_stats(analyses)
    latest = max(analyses, key=lambda a: a.analysis_date) if analyses else None

    if stats["has_data"]:
        farm_area   = stats["total_area_analyzed"]
        soil_health = round(_mean([a.fertility_rating for a in analyses]) / 10 * 100)
    else:
        farm_area   = FARM_SIZE_AREA.get(farmer.farm_size, 0.0)
        soil_health = None

    return {
        "farm_area":             farm_area,
        "soil_health":           soil_health,
        "active_maps":           len(analyses),
        "recommendations":       (len(latest.crop_recommendation.alternatives) + 1
                                  if latest else 0),
        "total_analyses":        stats["total_analyses"],
        "most_recommended_crop": stats["most_recommended_crop"],
        "average_ph":            stats["average_ph"],
    }


def _time_ago(then: datetime, now: datetime) -> str:
    elapsed = max(0.0, (now - then).total_seconds())
    days    = int(elapsed // 86400)
    if days == 0:
        hours = int(elapsed // 3600)
        if hours == 0:
            return "Just now"
        return f"{hours} hour{'s' if hours > 1 else ''} ago"
    if days == 1:
        return "Yesterday"
    return f"{days} days ago"


def recent_activity(farmer: Farmer, analyses: Sequence[SoilAnalysis],
                    now: datetime) -> list[dict]:
    """Newest five analyses as feed entries, or a welcome entry if none."""
    newest = sorted(analyses, key=lambda a: a.analysis_date, reverse=True)
    activities = [
        {
            "title": "Soil Analysis Completed",
            "desc":  f"{a.boundary.area:.2f} acres - {a.sample.soil_type} soil",
            "time":  _time_ago(a.analysis_date, now),
            "link":  f"/api/soil-analysis/report/{a.id}",
        }
        for a in newest[:RECENT_ACTIVITY_LIMIT]
    ]

    if not activities:
        joined = farmer.created_at or now
        days   = int(max(0.0, (now - joined).total_seconds()) // 86400)
        activities.append({
            "title": "Welcome to SOILY!",
            "desc":  "Start by creating your first soil analysis",
            "time":  f"{days} day{'s' if days != 1 else ''} ago",
            "link":  "/api/analyze-field",
        })
    return activities


# ─────────────────────────────────────────────────────────────────────────────
# Platform-wide aggregates (admin console)
# ─────────────────────────────────────────────────────────────────────────────

def registration_trend(farmers: Sequence[Farmer], now: datetime) -> list[dict]:
    """Registrations per calendar month over the last six months, oldest first."""
    since  = now - relativedelta(months=TREND_MONTHS)
    counts = Counter(
        (f.created_at.year, f.created_at.month)
        for f in farmers
        if f.created_at is not None and f.created_at >= since
    )
    return [
        {"month": datetime(year, month, 1).strftime("%b %Y"), "count": counts[(year, month)]}
        for year, month in sorted(counts)
    ]


def ph_by_region(farmers: Sequence[Farmer],
                 analyses: Sequence[SoilAnalysis]) -> list[dict]:
    locations = {f.id: f.location for f in farmers}
    by_location: dict[str, list[float]] = {}
    for analysis in analyses:
        location = locations.get(analysis.farmer_id)
        if location is None:
            continue
        by_location.setdefault(location, []).append(analysis.sample.ph)

    ranked = sorted(by_location.items(), key=lambda item: len(item[1]), reverse=True)
    return [
        {"location": location, "average_ph": round(_mean(values), 2), "count": len(values)}
        for location, values in ranked[:PH_REGIONS_LIMIT]
    ]


def nutrient_averages(analyses: Sequence[SoilAnalysis]) -> dict:
    if not analyses:
        return {"nitrogen": 0.0, "phosphorus": 0.0, "potassium": 0.0,
                "organic_carbon": 0.0}
    return {
        "nitrogen":       _mean([a.sample.nitrogen for a in analyses]),
        "phosphorus":     _mean([a.sample.phosphorus for a in analyses]),
        "potassium":      _mean([a.sample.potassium for a in analyses]),
        "organic_carbon": _mean([a.sample.organic_carbon for a in analyses]),
    }


def admin_statistics(farmers: Sequence[Farmer],
                     analyses: Sequence[SoilAnalysis],
                     now: datetime) -> dict:
    """
    Platform statistics for the admin console. Every analysis counts here,
    archived ones included.
    """
    top_crops = _distribution(a.crop_recommendation.primary.name for a in analyses)

    return {
        "total_farmers":    len(farmers),
        "active_farmers":   sum(1 for f in farmers if f.is_active),
        "total_analyses":   len(analyses),
        "archived_reports": sum(1 for a in analyses if a.is_archived),
        "total_area":       round(sum(a.boundary.area for a in analyses), 2),
        "total_downloads":  sum(a.download_count for a in analyses),
        "total_views":      sum(1 for a in analyses if a.report_viewed),

        "farm_size_distribution":   _distribution(f.farm_size for f in farmers),
        "soil_type_distribution":   _distribution(a.sample.soil_type for a in analyses),
        "soil_health_distribution": _distribution(a.soil_health for a in analyses),
        "seasonal_data":            _distribution(a.season for a in analyses),

        "registration_trend": registration_trend(farmers, now),
        "top_crops":          [{"crop": c["name"], "count": c["count"]}
                               for c in top_crops[:TOP_CROPS_LIMIT]],
        "ph_by_region":       ph_by_region(farmers, analyses),
        "npk_averages":       nutrient_averages(analyses),
    }
