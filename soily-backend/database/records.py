"""
database/records.py
-------------------
Read/write helpers for farmers, login history and soil analyses.

Every helper takes an open sqlite3 connection (the request-scoped one from
app.py) and converts rows to the dataclasses in services/schemas.py, so
routes never handle raw rows. Writes are not committed here; callers wrap
them in `with db:` for commit / rollback.

Usage:
    from database.records import get_farmer, list_analyses
    farmer   = get_farmer(db, farmer_id)
    analyses = list_analyses(db, farmer_id=farmer.id)
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Iterable

from services.schemas import (
    Farmer, Subscription, SoilAnalysis, SoilSample, BoundaryGeometry,
    CropRecommendation, PrimaryCrop, CropMatch, SoilColor,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat(timespec="seconds") if value else None


def _dt(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _placeholders(ids: list[int]) -> str:
    return ", ".join("?" for _ in ids)


# ─────────────────────────────────────────────────────────────────────────────
# Farmers
# ─────────────────────────────────────────────────────────────────────────────

# API-updatable farmer columns → whether the value is stored as JSON
FARMER_COLUMNS: dict[str, bool] = {
    "full_name":           False,
    "phone":               False,
    "email":               False,
    "password_hash":       False,
    "location":            False,
    "farm_size":           False,
    "preferred_language":  False,
    "is_active":           False,
    "is_verified":         False,
    "address":             True,
    "crops":               True,
    "soil_type":           False,
    "irrigation_type":     False,
    "farming_experience":  False,
    "notifications":       True,
    "subscription_type":   False,
    "subscription_status": False,
    "profile_image":       False,
    "notes":               False,
    "last_login":          False,
}


def farmer_from_row(row: sqlite3.Row) -> Farmer:
    return Farmer(
        id                 = row["id"],
        full_name          = row["full_name"],
        email              = row["email"],
        phone              = row["phone"],
        password_hash      = row["password_hash"],
        location           = row["location"],
        farm_size          = row["farm_size"],
        preferred_language = row["preferred_language"],
        is_active          = bool(row["is_active"]),
        is_verified        = bool(row["is_verified"]),
        address            = json.loads(row["address"]),
        crops              = json.loads(row["crops"]),
        soil_type          = row["soil_type"],
        irrigation_type    = row["irrigation_type"],
        farming_experience = row["farming_experience"],
        notifications      = json.loads(row["notifications"]),
        subscription       = Subscription(
            type       = row["subscription_type"],
            status     = row["subscription_status"],
            start_date = _dt(row["subscription_start"]),
            end_date   = _dt(row["subscription_end"]),
        ),
        profile_image      = row["profile_image"],
        notes              = row["notes"],
        last_login         = _dt(row["last_login"]),
        created_at         = _dt(row["created_at"]),
        updated_at         = _dt(row["updated_at"]),
    )


def create_farmer(db: sqlite3.Connection, farmer: Farmer) -> Farmer:
    """Insert a farmer and return it with id and timestamps set."""
    now = utcnow()
    farmer.created_at = farmer.created_at or now
    farmer.updated_at = now
    farmer.subscription.start_date = farmer.subscription.start_date or now
    cur = db.execute(
        """INSERT INTO farmers
               (full_name, email, phone, password_hash, location, farm_size,
                preferred_language, is_active, is_verified, address, crops,
                soil_type, irrigation_type, farming_experience, notifications,
                subscription_type, subscription_status,
                subscription_start, subscription_end,
                profile_image, notes, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            farmer.full_name,
            farmer.email,
            farmer.phone,
            farmer.password_hash,
            farmer.location,
            farmer.farm_size,
            farmer.preferred_language,
            int(farmer.is_active),
            int(farmer.is_verified),
            json.dumps(farmer.address),
            json.dumps(farmer.crops),
            farmer.soil_type,
            farmer.irrigation_type,
            farmer.farming_experience,
            json.dumps(farmer.notifications),
            farmer.subscription.type,
            farmer.subscription.status,
            _ts(farmer.subscription.start_date),
            _ts(farmer.subscription.end_date),
            farmer.profile_image,
            farmer.notes,
            _ts(farmer.created_at),
            _ts(farmer.updated_at),
        ),
    )
    farmer.id = cur.lastrowid
    return farmer


def get_farmer(db: sqlite3.Connection, farmer_id: int) -> Farmer | None:
    row = db.execute("SELECT * FROM farmers WHERE id = ?", (farmer_id,)).fetchone()
    return farmer_from_row(row) if row else None


def get_farmer_by_email(db: sqlite3.Connection, email: str) -> Farmer | None:
    row = db.execute("SELECT * FROM farmers WHERE email = ?", (email,)).fetchone()
    return farmer_from_row(row) if row else None


def find_conflict(db: sqlite3.Connection, email: str | None = None,
                  phone: str | None = None, exclude_id: int | None = None) -> str | None:
    """Return 'email' or 'phone' if another farmer already uses it, else None."""
    for column, value in (("email", email), ("phone", phone)):
        if value is None:
            continue
        row = db.execute(
            f"SELECT id FROM farmers WHERE {column} = ? AND id != ?",
            (value, exclude_id if exclude_id is not None else -1),
        ).fetchone()
        if row is not None:
            return column
    return None


def list_farmers(db: sqlite3.Connection) -> list[Farmer]:
    rows = db.execute("SELECT * FROM farmers ORDER BY created_at DESC, id DESC").fetchall()
    return [farmer_from_row(r) for r in rows]


def update_farmer(db: sqlite3.Connection, farmer_id: int, fields: dict) -> bool:
    """
    Update the given columns (keys of FARMER_COLUMNS) and bump updated_at.
    Returns False when the farmer does not exist.
    """
    unknown = set(fields) - set(FARMER_COLUMNS)
    if unknown:
        raise KeyError(f"not updatable: {', '.join(sorted(unknown))}")

    assignments, params = [], []
    for column, value in fields.items():
        if FARMER_COLUMNS[column]:
            value = json.dumps(value)
        elif isinstance(value, bool):
            value = int(value)
        elif isinstance(value, datetime):
            value = _ts(value)
        assignments.append(f"{column} = ?")
        params.append(value)
    assignments.append("updated_at = ?")
    params.append(_ts(utcnow()))

    cur = db.execute(
        f"UPDATE farmers SET {', '.join(assignments)} WHERE id = ?",
        params + [farmer_id],
    )
    return cur.rowcount > 0


def delete_farmer(db: sqlite3.Connection, farmer_id: int) -> bool:
    """Delete a farmer; their analyses and login history cascade."""
    cur = db.execute("DELETE FROM farmers WHERE id = ?", (farmer_id,))
    return cur.rowcount > 0


def bulk_delete_farmers(db: sqlite3.Connection, ids: list[int]) -> int:
    if not ids:
        return 0
    cur = db.execute(f"DELETE FROM farmers WHERE id IN ({_placeholders(ids)})", ids)
    return cur.rowcount


def record_login(db: sqlite3.Connection, farmer_id: int, ip_address: str | None,
                 user_agent: str | None, when: datetime) -> None:
    db.execute(
        "INSERT INTO login_history (farmer_id, timestamp, ip_address, user_agent) "
        "VALUES (?, ?, ?, ?)",
        (farmer_id, _ts(when), ip_address, user_agent),
    )
    db.execute(
        "UPDATE farmers SET last_login = ? WHERE id = ?", (_ts(when), farmer_id)
    )


def login_history(db: sqlite3.Connection, farmer_id: int, limit: int = 10) -> list[dict]:
    rows = db.execute(
        """SELECT timestamp, ip_address, user_agent FROM login_history
           WHERE farmer_id = ? ORDER BY timestamp DESC, id DESC LIMIT ?""",
        (farmer_id, limit),
    ).fetchall()
    return [dict(r) for r in rows]


def analysis_counts(db: sqlite3.Connection) -> dict[int, int]:
    rows = db.execute(
        "SELECT farmer_id, COUNT(*) AS cnt FROM soil_analyses GROUP BY farmer_id"
    ).fetchall()
    return {r["farmer_id"]: r["cnt"] for r in rows}


# ─────────────────────────────────────────────────────────────────────────────
# Soil analyses
# ─────────────────────────────────────────────────────────────────────────────

def analysis_from_row(row: sqlite3.Row) -> SoilAnalysis:
    color = None
    if row["soil_color_rgb"]:
        color = SoilColor(rgb=row["soil_color_rgb"],
                          description=row["soil_color_description"] or "")

    return SoilAnalysis(
        id        = row["id"],
        farmer_id = row["farmer_id"],
        boundary  = BoundaryGeometry(
            coordinates      = [tuple(p) for p in json.loads(row["coordinates"])],
            area             = row["area"],
            perimeter        = row["perimeter"],
            center_latitude  = row["center_latitude"],
            center_longitude = row["center_longitude"],
        ),
        sample = SoilSample(
            ph             = row["ph"],
            nitrogen       = row["nitrogen"],
            phosphorus     = row["phosphorus"],
            potassium      = row["potassium"],
            organic_carbon = row["organic_carbon"],
            clay           = row["clay"],
            sand           = row["sand"],
            bulk_density   = row["bulk_density"],
            cec            = row["cec"],
            soil_type      = row["soil_type"],
            rainfall       = row["rainfall"],
            temperature    = row["temperature"],
        ),
        crop_recommendation = CropRecommendation(
            primary = PrimaryCrop(
                name        = row["primary_crop"],
                match_score = row["primary_match_score"],
                fertilizer  = row["primary_fertilizer"],
            ),
            alternatives = [
                CropMatch(name=c["name"], match_score=c["match_score"])
                for c in json.loads(row["alternative_crops"])
            ],
        ),
        soil_health       = row["soil_health"],
        fertility_rating  = row["fertility_rating"],
        analysis_date     = _dt(row["analysis_date"]),
        season            = row["season"],
        data_source       = row["data_source"],
        notes             = row["notes"],
        soil_color        = color,
        is_archived       = bool(row["is_archived"]),
        report_viewed     = bool(row["report_viewed"]),
        report_downloaded = bool(row["report_downloaded"]),
        download_count    = row["download_count"],
        created_at        = _dt(row["created_at"]),
        updated_at        = _dt(row["updated_at"]),
    )


def create_analysis(db: sqlite3.Connection, analysis: SoilAnalysis) -> SoilAnalysis:
    """Insert an analysis snapshot and return it with id and timestamps set."""
    now = utcnow()
    analysis.created_at = now
    analysis.updated_at = now
    b, s, rec = analysis.boundary, analysis.sample, analysis.crop_recommendation
    color = analysis.soil_color

    cur = db.execute(
        """INSERT INTO soil_analyses
               (farmer_id, coordinates, area, perimeter,
                center_latitude, center_longitude,
                ph, nitrogen, phosphorus, potassium, organic_carbon,
                clay, sand, bulk_density, cec, soil_type, rainfall, temperature,
                soil_color_rgb, soil_color_description,
                primary_crop, primary_match_score, primary_fertilizer,
                alternative_crops, soil_health, fertility_rating,
                analysis_date, season, data_source, notes,
                is_archived, report_viewed, report_downloaded, download_count,
                created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                   ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            analysis.farmer_id,
            json.dumps([list(p) for p in b.coordinates]),
            b.area,
            b.perimeter,
            b.center_latitude,
            b.center_longitude,
            s.ph,
            s.nitrogen,
            s.phosphorus,
            s.potassium,
            s.organic_carbon,
            s.clay,
            s.sand,
            s.bulk_density,
            s.cec,
            s.soil_type,
            s.rainfall,
            s.temperature,
            color.rgb if color else None,
            color.description if color else None,
            rec.primary.name,
            rec.primary.match_score,
            rec.primary.fertilizer,
            json.dumps([{"name": c.name, "match_score": c.match_score}
                        for c in rec.alternatives]),
            analysis.soil_health,
            analysis.fertility_rating,
            _ts(analysis.analysis_date),
            analysis.season,
            analysis.data_source,
            analysis.notes,
            int(analysis.is_archived),
            int(analysis.report_viewed),
            int(analysis.report_downloaded),
            analysis.download_count,
            _ts(analysis.created_at),
            _ts(analysis.updated_at),
        ),
    )
    analysis.id = cur.lastrowid
    return analysis


def get_analysis(db: sqlite3.Connection, analysis_id: int,
                 farmer_id: int | None = None) -> SoilAnalysis | None:
    """Fetch one analysis; with farmer_id, only if that farmer owns it."""
    sql, params = "SELECT * FROM soil_analyses WHERE id = ?", [analysis_id]
    if farmer_id is not None:
        sql += " AND farmer_id = ?"
        params.append(farmer_id)
    row = db.execute(sql, params).fetchone()
    return analysis_from_row(row) if row else None


def list_analyses(db: sqlite3.Connection, farmer_id: int | None = None,
                  include_archived: bool = False) -> list[SoilAnalysis]:
    """Analyses newest first, optionally for one farmer."""
    where, params = [], []
    if farmer_id is not None:
        where.append("farmer_id = ?")
        params.append(farmer_id)
    if not include_archived:
        where.append("is_archived = 0")
    where_sql = ("WHERE " + " AND ".join(where)) if where else ""
    rows = db.execute(
        f"SELECT * FROM soil_analyses {where_sql} ORDER BY analysis_date DESC, id DESC",
        params,
    ).fetchall()
    return [analysis_from_row(r) for r in rows]


def _touch(db: sqlite3.Connection, analysis_id: int, farmer_id: int | None,
           set_sql: str, params: Iterable) -> bool:
    sql = f"UPDATE soil_analyses SET {set_sql}, updated_at = ? WHERE id = ?"
    args = list(params) + [_ts(utcnow()), analysis_id]
    if farmer_id is not None:
        sql += " AND farmer_id = ?"
        args.append(farmer_id)
    return db.execute(sql, args).rowcount > 0


def mark_viewed(db, analysis_id: int, farmer_id: int | None = None) -> bool:
    return _touch(db, analysis_id, farmer_id, "report_viewed = 1", ())


def record_download(db, analysis_id: int, farmer_id: int | None = None) -> bool:
    return _touch(db, analysis_id, farmer_id,
                  "report_downloaded = 1, download_count = download_count + 1", ())


def set_notes(db, analysis_id: int, notes: str | None,
              farmer_id: int | None = None) -> bool:
    return _touch(db, analysis_id, farmer_id, "notes = ?", (notes,))


def set_archived(db, analysis_id: int, archived: bool,
                 farmer_id: int | None = None) -> bool:
    return _touch(db, analysis_id, farmer_id, "is_archived = ?", (int(archived),))


def delete_analysis(db: sqlite3.Connection, analysis_id: int,
                    farmer_id: int | None = None) -> bool:
    sql, params = "DELETE FROM soil_analyses WHERE id = ?", [analysis_id]
    if farmer_id is not None:
        sql += " AND farmer_id = ?"
        params.append(farmer_id)
    return db.execute(sql, params).rowcount > 0


def bulk_delete_analyses(db: sqlite3.Connection, ids: list[int]) -> int:
    if not ids:
        return 0
    cur = db.execute(
        f"DELETE FROM soil_analyses WHERE id IN ({_placeholders(ids)})", ids
    )
    return cur.rowcount
