"""
database/init_db.py
-------------------
SQLite database initialisation and connection helper.

Tables created:
    farmers        – account, farm profile and subscription of each farmer
    login_history  – one row per successful login
    soil_analyses  – boundary, soil sample, scores and crop recommendation

Design notes:
    - Uses WAL journal mode for better concurrent read performance.
    - Foreign keys enforced via PRAGMA; deleting a farmer cascades to
      their login history and soil analyses.
    - Nested lists (boundary coordinates, alternative crops, farm crops,
      address, notification flags) are stored as JSON text.
    - Timestamps are ISO-8601 strings in UTC, written by the application.
    - All functions are idempotent (safe to call at every app startup).

Usage:
    from database.init_db import init_db, get_connection
    init_db(db_path)                    # call once at startup
    conn = get_connection(db_path)      # get a connection for a request
"""

from __future__ import annotations

import logging
import os
import sqlite3

logger = logging.getLogger(__name__)

# Default database file lives inside the database/ package directory
DB_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "soily.db")


# ─────────────────────────────────────────────────────────────────────────────
# Connection helper
# ─────────────────────────────────────────────────────────────────────────────

def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """
    Return a configured SQLite connection.

    Configuration:
        - row_factory = sqlite3.Row (dict-like row access)
        - foreign_keys = ON
        - journal_mode = WAL (better concurrency)

    The caller is responsible for closing the connection.
    """
    conn = sqlite3.connect(db_path or DB_PATH, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


# ─────────────────────────────────────────────────────────────────────────────
# Schema DDL
# ─────────────────────────────────────────────────────────────────────────────

_DDL_STATEMENTS = [

    # ── 1. Farmers ─────────────────────────────────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS farmers (
        id                  INTEGER PRIMARY KEY AUTOINCREMENT,
        full_name           TEXT    NOT NULL,
        email               TEXT    NOT NULL UNIQUE,
        phone               TEXT    NOT NULL UNIQUE,
        password_hash       TEXT    NOT NULL,
        location            TEXT    NOT NULL,
        farm_size           TEXT    NOT NULL,
        preferred_language  TEXT    NOT NULL DEFAULT 'en',
        is_active           INTEGER NOT NULL DEFAULT 1,
        is_verified         INTEGER NOT NULL DEFAULT 0,
        address             TEXT    NOT NULL DEFAULT '{"country": "India"}',
        crops               TEXT    NOT NULL DEFAULT '[]',
        soil_type           TEXT,
        irrigation_type     TEXT,
        farming_experience  INTEGER,
        notifications       TEXT    NOT NULL
                                    DEFAULT '{"email": true, "sms": true, "push": true}',
        subscription_type   TEXT    NOT NULL DEFAULT 'free',
        subscription_status TEXT    NOT NULL DEFAULT 'active',
        subscription_start  TEXT,
        subscription_end    TEXT,
        profile_image       TEXT,
        notes               TEXT,
        last_login          TEXT,
        created_at          TEXT    NOT NULL,
        updated_at          TEXT    NOT NULL
    )
    """,

    # ── 2. Login history (linked to a farmer) ─────────────────────────────
    """
    CREATE TABLE IF NOT EXISTS login_history (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        farmer_id   INTEGER NOT NULL
                            REFERENCES farmers(id) ON DELETE CASCADE,
        timestamp   TEXT    NOT NULL,
        ip_address  TEXT,
        user_agent  TEXT
    )
    """,

    # ── 3. Soil analyses – snapshot of one mapped field ───────────────────
    """
    CREATE TABLE IF NOT EXISTS soil_analyses (
        id                     INTEGER PRIMARY KEY AUTOINCREMENT,
        farmer_id              INTEGER NOT NULL
                                       REFERENCES farmers(id) ON DELETE CASCADE,
        coordinates            TEXT    NOT NULL,
        area                   REAL    NOT NULL,
        perimeter              REAL    NOT NULL,
        center_latitude        REAL    NOT NULL,
        center_longitude       REAL    NOT NULL,
        ph                     REAL    NOT NULL,
        nitrogen               REAL    NOT NULL,
        phosphorus             REAL    NOT NULL,
        potassium              REAL    NOT NULL,
        organic_carbon         REAL    NOT NULL,
        clay                   REAL    NOT NULL,
        sand                   REAL,
        bulk_density           REAL,
        cec                    REAL,
        soil_type              TEXT    NOT NULL,
        rainfall               REAL    NOT NULL,
        temperature            REAL    NOT NULL,
        soil_color_rgb         TEXT,
        soil_color_description TEXT,
        primary_crop           TEXT    NOT NULL,
        primary_match_score    REAL    NOT NULL,
        primary_fertilizer     TEXT    NOT NULL,
        alternative_crops      TEXT    NOT NULL DEFAULT '[]',
        soil_health            TEXT    NOT NULL,
        fertility_rating       REAL    NOT NULL,
        analysis_date          TEXT    NOT NULL,
        season                 TEXT    NOT NULL,
        data_source            TEXT    NOT NULL,
        notes                  TEXT,
        is_archived            INTEGER NOT NULL DEFAULT 0,
        report_viewed          INTEGER NOT NULL DEFAULT 0,
        report_downloaded      INTEGER NOT NULL DEFAULT 0,
        download_count         INTEGER NOT NULL DEFAULT 0,
        created_at             TEXT    NOT NULL,
        updated_at             TEXT    NOT NULL
    )
    """,

    # ── Indexes for dashboard and admin queries ────────────────────────────
    "CREATE INDEX IF NOT EXISTS idx_analyses_farmer_date ON soil_analyses(farmer_id, analysis_date DESC)",
    "CREATE INDEX IF NOT EXISTS idx_analyses_archived    ON soil_analyses(is_archived)",
    "CREATE INDEX IF NOT EXISTS idx_analyses_created_at  ON soil_analyses(created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_login_farmer_id      ON login_history(farmer_id)",
    "CREATE INDEX IF NOT EXISTS idx_farmers_created_at   ON farmers(created_at DESC)",
]


# ─────────────────────────────────────────────────────────────────────────────
# Initialisation entry point
# ─────────────────────────────────────────────────────────────────────────────

def init_db(db_path: str | None = None) -> None:
    """
    Create all required tables and indexes if they do not already exist.
    Idempotent – safe to call every time the Flask app starts.

    Raises:
        sqlite3.Error: If the database file cannot be created or any DDL fails.
    """
    path = db_path or DB_PATH
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    conn = get_connection(path)
    try:
        with conn:
            for stmt in _DDL_STATEMENTS:
                conn.execute(stmt)
    finally:
        conn.close()

    logger.info("[DB] SQLite database initialised → %s", path)


# ─────────────────────────────────────────────────────────────────────────────
# Run standalone: python database/init_db.py
# ─────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db(os.getenv("SOILY_DB_PATH"))
