"""
app.py
------
SOILY — Digital Soil Mapping & Crop Recommendation API (Flask)

Endpoints:
    GET    /health                                  Liveness / readiness probe

    POST   /auth/register                           Create a farmer account
    POST   /auth/login                              Start a farmer session
    POST   /auth/logout                             End the session

    GET    /api/farmer/profile                      Own profile + recent logins
    PUT    /api/farmer/profile                      Update profile fields
    PUT    /api/farmer/farm-details                 Update location / size / notes
    POST   /api/language                            Set preferred language
    POST   /api/farmer/change-password              Change password
    DELETE /api/farmer/delete-account               Delete account and analyses

    POST   /api/analyze-field                       Simulated preview of a boundary
    POST   /api/soil-analysis/save                  Persist an analysis
    GET    /api/soil-analysis/reports               Own analyses + stats
    GET    /api/soil-analysis/report/<id>           One analysis (marks viewed)
    DELETE /api/soil-analysis/report/<id>           Delete one analysis
    PUT    /api/soil-analysis/report/<id>/notes     Update notes
    PUT    /api/soil-analysis/report/<id>/archive   Archive / unarchive
    GET    /api/soil-analysis/download/<id>         PDF of one analysis
    GET    /api/soil-analysis/export-all            PDF of all analyses
    GET    /api/soil-analysis/statistics            Farmer statistics
    GET    /api/soil-analysis/seasonal-trends       Per-season aggregates

    GET    /api/dashboard/stats                     Dashboard cards
    GET    /api/dashboard/recent-activity           Activity feed
    GET    /api/dashboard/recommendations           Field advisories

    POST   /admin/login, /admin/logout              Admin session
    GET    /api/admin/farmers | analyses | statistics | generate-report
    GET    /api/admin/farmer/<id>, /api/admin/analysis/<id>
    PUT    /api/admin/farmer/<id>
    PATCH  /api/admin/farmer/<id>/toggle-status
    DELETE /api/admin/farmer/<id>, /api/admin/analysis/<id>
    POST   /api/admin/bulk-delete-farmers, /api/admin/bulk-delete-analyses

Auth:
    Cookie session. Farmer routes need session["farmer_id"]; admin routes
    need session["is_admin"]. Admin credentials come only from the
    environment; without them admin login answers 503.

Startup:
    Development :  python app.py
    Production  :  gunicorn -w 4 -b 0.0.0.0:5000 "app:create_app()"

Environment variables (optional):
    SOILY_PORT                 – listening port (default: 5000)
    SOILY_DEBUG                – set to "1" to enable Flask debug mode
    SOILY_SECRET               – Flask secret key (auto-generated if not set)
    SOILY_DB_PATH              – SQLite file (default: database/soily.db)
    SOILY_ADMIN_USERNAME       – admin user name
    SOILY_ADMIN_PASSWORD_HASH  – werkzeug password hash for the admin
    SOILY_LOGO_PATH            – PNG logo for PDF reports
    SOILY_FONTS_DIR            – directory holding Poppins TTF files
"""

from __future__ import annotations

import hmac
import os
import sys
import traceback
from datetime import datetime, timedelta, timezone
from functools import wraps

from flask import Flask, Response, current_app, g, jsonify, request, session
from flask_cors import CORS
from werkzeug.security import check_password_hash, generate_password_hash

from dotenv import load_dotenv
load_dotenv()

# ── Ensure project root is importable from any CWD ───────────────────────────
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from database.init_db import init_db, get_connection, DB_PATH
from database import records
from services.schemas import (
    Farmer, SoilAnalysis, ValidationError,
    FARM_SIZES, FARM_SOIL_TYPES, IRRIGATION_TYPES, LANGUAGES, SEASONS, DATA_SOURCES,
    parse_soil_sample, parse_crop_recommendation, parse_soil_color,
    parse_analysis_date, parse_choice, parse_notes, parse_address,
    parse_farm_crops, parse_experience, parse_notifications, parse_bool,
    parse_id_list, normalise_email, normalise_phone, validate_full_name,
    validate_location, validate_password,
)
from services.geometry_service    import derive_boundary
from services.scoring_service     import (derive_scores, determine_season,
                                          generate_recommendations)
from services.crop_service        import recommend_crops, normalise_recommendation
from services.soil_service        import simulate_sample
from services.aggregation_service import (farmer_stats, seasonal_trends,
                                          dashboard_stats, recent_activity,
                                          admin_statistics)
from services.report_layout       import ReportDataError
from services.report_service      import (ReportFile, render_single_report,
                                          render_multi_report)


# ─────────────────────────────────────────────────────────────────────────────
# App factory
# ─────────────────────────────────────────────────────────────────────────────

def create_app(test_config: dict | None = None) -> Flask:
    """Application factory. Called by gunicorn and tests."""
    app = Flask(__name__)
    app.json.sort_keys = False
    app.config.update(
        SECRET_KEY                 = os.getenv("SOILY_SECRET") or os.urandom(24).hex(),
        DATABASE                   = os.getenv("SOILY_DB_PATH") or DB_PATH,
        ADMIN_USERNAME             = os.getenv("SOILY_ADMIN_USERNAME"),
        ADMIN_PASSWORD_HASH        = os.getenv("SOILY_ADMIN_PASSWORD_HASH"),
        REPORT_LOGO_PATH           = os.getenv("SOILY_LOGO_PATH")
                                     or os.path.join(_BASE_DIR, "static", "logo1.png"),
        REPORT_FONTS_DIR           = os.getenv("SOILY_FONTS_DIR")
                                     or os.path.join(_BASE_DIR, "fonts"),
        SESSION_COOKIE_HTTPONLY    = True,
        SESSION_COOKIE_SAMESITE    = "Lax",
        PERMANENT_SESSION_LIFETIME = timedelta(days=30),
    )
    if test_config:
        app.config.update(test_config)

    # Initialise database tables at startup
    try:
        init_db(app.config["DATABASE"])
    except Exception as exc:
        app.logger.critical("Database init failed: %s", exc)
        raise

    CORS(app, supports_credentials=True)

    _register_routes(app)
    _register_error_handlers(app)

    return app


# ─────────────────────────────────────────────────────────────────────────────
# Request-scoped DB connection
# ─────────────────────────────────────────────────────────────────────────────

def _get_db():
    """Return (and cache per request) a SQLite connection."""
    if "db" not in g:
        g.db = get_connection(current_app.config["DATABASE"])
    return g.db


# ─────────────────────────────────────────────────────────────────────────────
# Decorators / helpers
# ─────────────────────────────────────────────────────────────────────────────

def _require_json(f):
    """Decorator: reject requests whose Content-Type is not application/json."""
    @wraps(f)
    def _wrapper(*args, **kwargs):
        if not request.is_json:
            return _err("Request Content-Type must be application/json", 415)
        return f(*args, **kwargs)
    return _wrapper


def _require_farmer(f):
    """Decorator: load the logged-in, active farmer into g.farmer or 401."""
    @wraps(f)
    def _wrapper(*args, **kwargs):
        farmer_id = session.get("farmer_id")
        if farmer_id is None:
            return _err("Authentication required", 401)
        farmer = records.get_farmer(_get_db(), farmer_id)
        if farmer is None or not farmer.is_active:
            session.clear()
            return _err("Authentication required", 401)
        g.farmer = farmer
        return f(*args, **kwargs)
    return _wrapper


def _require_admin(f):
    """Decorator: reject requests without an admin session."""
    @wraps(f)
    def _wrapper(*args, **kwargs):
        if not session.get("is_admin"):
            return _err("Admin access required", 403)
        return f(*args, **kwargs)
    return _wrapper


def _err(message: str, code: int = 400, field: str | None = None):
    """Return a standardised JSON error response."""
    body = {
        "error":     message,
        "status":    code,
        "timestamp": _utcnow(),
    }
    if field:
        body["field"] = field
    return jsonify(body), code


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _utcnow() -> str:
    """Return current UTC time as ISO-8601 string."""
    return _now().isoformat(timespec="seconds")


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _pdf_response(report: ReportFile) -> Response:
    return Response(
        report.content,
        mimetype=report.mimetype,
        headers={
            "Content-Disposition": f"attachment; filename={report.filename}",
            "Content-Length":      str(len(report.content)),
        },
    )


def _report_assets() -> dict:
    return {
        "logo_path": current_app.config["REPORT_LOGO_PATH"],
        "fonts_dir": current_app.config["REPORT_FONTS_DIR"],
    }


def _choice(field: str, choices):
    def _parse(value):
        return parse_choice({field: value}, field, choices, required=True)
    return _parse


# camelCase request key → (column, parser)
_PROFILE_FIELDS = {
    "fullName":          ("full_name", validate_full_name),
    "phone":             ("phone", normalise_phone),
    "location":          ("location", validate_location),
    "farmSize":          ("farm_size", _choice("farmSize", FARM_SIZES)),
    "address":           ("address", parse_address),
    "crops":             ("crops", parse_farm_crops),
    "soilType":          ("soil_type", _choice("soilType", FARM_SOIL_TYPES)),
    "irrigationType":    ("irrigation_type", _choice("irrigationType", IRRIGATION_TYPES)),
    "farmingExperience": ("farming_experience", parse_experience),
    "notifications":     ("notifications", parse_notifications),
    "profileImage":      ("profile_image", lambda v: str(v) if v else None),
}
_FARM_DETAIL_FIELDS = ("location", "farmSize")
_ADMIN_FIELDS = {
    "fullName": _PROFILE_FIELDS["fullName"],
    "email":    ("email", normalise_email),
    "phone":    _PROFILE_FIELDS["phone"],
    "location": _PROFILE_FIELDS["location"],
    "farmSize": _PROFILE_FIELDS["farmSize"],
    "isActive": ("is_active", lambda v: parse_bool(v, "isActive")),
    "notes":    ("notes", parse_notes),
}


def _collect_updates(data: dict, parsers: dict) -> dict:
    """Parse the keys present in `data` into {column: value}."""
    updates = {}
    for key, (column, parse) in parsers.items():
        if key in data:
            updates[column] = parse(data[key])
    return updates


def _build_analysis(farmer_id: int, data: dict) -> SoilAnalysis:
    """Validate a save request and derive every computed field."""
    boundary_raw = data.get("boundary")
    if not isinstance(boundary_raw, dict):
        raise ValidationError("boundary", "boundary is required")

    boundary = derive_boundary(boundary_raw.get("coordinates"))
    sample   = parse_soil_sample(data.get("soilProperties"), data.get("climateData"))
    scores   = derive_scores(sample)

    recommendation = parse_crop_recommendation(data.get("cropRecommendation"))
    if recommendation is None:
        recommendation = recommend_crops(sample)
    else:
        recommendation = normalise_recommendation(recommendation)

    local_date = parse_analysis_date(data.get("analysisDate"))
    return SoilAnalysis(
        farmer_id           = farmer_id,
        boundary            = boundary,
        sample              = sample,
        crop_recommendation = recommendation,
        soil_health         = scores["soil_health"],
        fertility_rating    = scores["fertility_rating"],
        analysis_date       = local_date.astimezone(timezone.utc),
        season              = parse_choice(data, "season", SEASONS,
                                           default=determine_season(local_date)),
        data_source         = parse_choice(data, "dataSource", DATA_SOURCES,
                                           default="SoilGrids API"),
        notes               = parse_notes(data.get("notes")),
        soil_color          = parse_soil_color(data.get("soilColor")),
    )


# ─────────────────────────────────────────────────────────────────────────────
# Route registration
# ─────────────────────────────────────────────────────────────────────────────

def _register_routes(app: Flask) -> None:

    # Tear down DB connection after each request
    @app.teardown_appcontext
    def _close_db(exc=None):
        db = g.pop("db", None)
        if db is not None:
            db.close()

    # =========================================================================
    # GET /health
    # =========================================================================
    @app.route("/health", methods=["GET"])
    def health():
        """Liveness + readiness probe."""
        return jsonify({
            "status":    "running",
            "timestamp": _utcnow(),
            "db_ready":  os.path.exists(app.config["DATABASE"]),
        }), 200

    # =========================================================================
    # Auth
    # =========================================================================
    @app.route("/auth/register", methods=["POST"])
    @_require_json
    def register():
        """
        Create a farmer account.

        Expected JSON body fields:
            fullName, email, phone, location, farmSize, password, language?

        Returns 201 with the new farmer id.
        Returns 400 on missing / invalid fields, 409 on duplicate email or phone.
        """
        data = _body()
        required = ["fullName", "email", "phone", "location", "farmSize", "password"]
        missing  = [f for f in required if not str(data.get(f) or "").strip()]
        if missing:
            return _err(f"All fields are required: {', '.join(missing)}", 400)

        farmer = Farmer(
            full_name          = validate_full_name(data["fullName"]),
            email              = normalise_email(data["email"]),
            phone              = normalise_phone(data["phone"]),
            location           = validate_location(data["location"]),
            farm_size          = parse_choice(data, "farmSize", FARM_SIZES, required=True),
            preferred_language = parse_choice(data, "language", tuple(LANGUAGES), default="en"),
        )
        password = validate_password(data["password"])

        db = _get_db()
        conflict = records.find_conflict(db, email=farmer.email, phone=farmer.phone)
        if conflict == "email":
            return _err("Email already registered", 409, field="email")
        if conflict == "phone":
            return _err("Phone number already registered", 409, field="phone")

        farmer.password_hash = generate_password_hash(password)
        with db:
            records.create_farmer(db, farmer)

        app.logger.info("Registered farmer %d (%s)", farmer.id, farmer.email)
        return jsonify({
            "message":   "Registration successful",
            "farmer_id": farmer.id,
        }), 201

    @app.route("/auth/login", methods=["POST"])
    @_require_json
    def login():
        data     = _body()
        email    = str(data.get("email") or "").strip().lower()
        password = str(data.get("password") or "")
        if not email or not password:
            return _err("Email and password are required", 400)

        db     = _get_db()
        farmer = records.get_farmer_by_email(db, email)
        if farmer is None:
            return _err("Invalid email or password", 401, field="email")
        if not check_password_hash(farmer.password_hash, password):
            return _err("Invalid email or password", 401, field="password")
        if not farmer.is_active:
            return _err("Your account has been deactivated. Please contact support.", 403)

        with db:
            records.record_login(db, farmer.id, request.remote_addr,
                                 request.headers.get("User-Agent"), _now())

        session.clear()
        session["farmer_id"] = farmer.id
        session.permanent    = bool(data.get("remember"))

        app.logger.info("Farmer %d logged in", farmer.id)
        return jsonify({
            "message": "Login successful",
            "farmer":  farmer.public_profile(),
        }), 200

    @app.route("/auth/logout", methods=["POST"])
    def logout():
        session.pop("farmer_id", None)
        return jsonify({"message": "Logged out"}), 200

    # =========================================================================
    # Farmer profile
    # =========================================================================
    @app.route("/api/farmer/profile", methods=["GET"])
    @_require_farmer
    def get_profile():
        body = g.farmer.to_dict()
        body["recent_logins"] = records.login_history(_get_db(), g.farmer.id, limit=5)
        return jsonify({"farmer": body}), 200

    @app.route("/api/farmer/profile", methods=["PUT"])
    @_require_farmer
    @_require_json
    def update_profile():
        updates = _collect_updates(_body(), _PROFILE_FIELDS)
        if not updates:
            return _err("No updatable fields supplied", 400)

        db = _get_db()
        if "phone" in updates and records.find_conflict(
                db, phone=updates["phone"], exclude_id=g.farmer.id):
            return _err("Phone number already registered", 409, field="phone")

        with db:
            records.update_farmer(db, g.farmer.id, updates)
        farmer = records.get_farmer(db, g.farmer.id)
        return jsonify({
            "message": "Profile updated successfully",
            "farmer":  farmer.to_dict(),
        }), 200

    @app.route("/api/farmer/farm-details", methods=["PUT"])
    @_require_farmer
    @_require_json
    def update_farm_details():
        data    = _body()
        updates = _collect_updates(
            data, {k: _PROFILE_FIELDS[k] for k in _FARM_DETAIL_FIELDS}
        )
        if "notes" in data:
            updates["notes"] = parse_notes(data["notes"])
        if not updates:
            return _err("No updatable fields supplied", 400)

        db = _get_db()
        with db:
            records.update_farmer(db, g.farmer.id, updates)
        farmer = records.get_farmer(db, g.farmer.id)
        return jsonify({
            "message": "Farm details updated successfully",
            "farmer":  farmer.to_dict(),
        }), 200

    @app.route("/api/language", methods=["POST"])
    @_require_farmer
    @_require_json
    def set_language():
        language = parse_choice(_body(), "language", tuple(LANGUAGES), required=True)
        db = _get_db()
        with db:
            records.update_farmer(db, g.farmer.id, {"preferred_language": language})
        return jsonify({
            "message":       "Language preference updated",
            "language":      language,
            "language_name": LANGUAGES[language],
        }), 200

    @app.route("/api/farmer/change-password", methods=["POST"])
    @_require_farmer
    @_require_json
    def change_password():
        data = _body()
        if not check_password_hash(g.farmer.password_hash,
                                   str(data.get("currentPassword") or "")):
            return _err("Current password is incorrect", 401, field="currentPassword")
        new_password = validate_password(data.get("newPassword"), "newPassword")

        db = _get_db()
        with db:
            records.update_farmer(db, g.farmer.id,
                                  {"password_hash": generate_password_hash(new_password)})
        return jsonify({"message": "Password updated successfully"}), 200

    @app.route("/api/farmer/delete-account", methods=["DELETE"])
    @_require_farmer
    def delete_account():
        db = _get_db()
        with db:
            records.delete_farmer(db, g.farmer.id)
        session.clear()
        app.logger.info("Farmer %d deleted their account", g.farmer.id)
        return jsonify({"message": "Account deleted successfully"}), 200

    # =========================================================================
    # Soil analysis
    # =========================================================================
    @app.route("/api/analyze-field", methods=["POST"])
    @_require_farmer
    @_require_json
    def analyze_field():
        """
        Preview a full analysis for a drawn boundary using simulated soil and
        climate estimates at its centre. Nothing is persisted.
        """
        data = _body()
        if "coordinates" not in data:
            return _err("No coordinates provided", 400, field="coordinates")

        boundary      = derive_boundary(data["coordinates"])
        sample, color = simulate_sample(boundary.center_latitude,
                                        boundary.center_longitude)
        scores         = derive_scores(sample)
        recommendation = recommend_crops(sample)
        now            = _now()

        preview = SoilAnalysis(
            farmer_id           = g.farmer.id,
            boundary            = boundary,
            sample              = sample,
            crop_recommendation = recommendation,
            soil_health         = scores["soil_health"],
            fertility_rating    = scores["fertility_rating"],
            analysis_date       = now,
            season              = determine_season(now),
            data_source         = "Simulated",
            soil_color          = color,
        )
        return jsonify({
            "analysis":        preview.to_dict(),
            "scores":          scores,
            "recommendations": generate_recommendations(sample, recommendation.primary),
        }), 200

    @app.route("/api/soil-analysis/save", methods=["POST"])
    @_require_farmer
    @_require_json
    def save_analysis():
        analysis = _build_analysis(g.farmer.id, _body())

        try:
            db = _get_db()
            with db:                              # auto-commit / rollback
                records.create_analysis(db, analysis)
        except Exception:
            app.logger.error("DB write error:\n%s", traceback.format_exc())
            return _err("Failed to save soil analysis", 500)

        app.logger.info(
            "Analysis %d saved for farmer %d: health=%s fertility=%.1f",
            analysis.id, g.farmer.id, analysis.soil_health, analysis.fertility_rating,
        )
        return jsonify({
            "message":     "Soil analysis saved successfully",
            "analysis_id": analysis.id,
            "analysis":    analysis.to_dict(),
        }), 201

    @app.route("/api/soil-analysis/reports", methods=["GET"])
    @_require_farmer
    def list_reports():
        analyses = records.list_analyses(_get_db(), farmer_id=g.farmer.id)
        return jsonify({
            "reports": [a.to_dict() for a in analyses],
            "stats":   farmer_stats(analyses),
        }), 200

    @app.route("/api/soil-analysis/report/<int:analysis_id>", methods=["GET"])
    @_require_farmer
    def get_report(analysis_id: int):
        db = _get_db()
        with db:
            found = records.mark_viewed(db, analysis_id, farmer_id=g.farmer.id)
        if not found:
            return _err("Report not found", 404)
        analysis = records.get_analysis(db, analysis_id, farmer_id=g.farmer.id)
        return jsonify({"report": analysis.to_dict()}), 200

    @app.route("/api/soil-analysis/report/<int:analysis_id>", methods=["DELETE"])
    @_require_farmer
    def delete_report(analysis_id: int):
        db = _get_db()
        with db:
            deleted = records.delete_analysis(db, analysis_id, farmer_id=g.farmer.id)
        if not deleted:
            return _err("Report not found", 404)
        return jsonify({"message": "Report deleted successfully"}), 200

    @app.route("/api/soil-analysis/report/<int:analysis_id>/notes", methods=["PUT"])
    @_require_farmer
    @_require_json
    def update_report_notes(analysis_id: int):
        notes = parse_notes(_body().get("notes"))
        db = _get_db()
        with db:
            found = records.set_notes(db, analysis_id, notes, farmer_id=g.farmer.id)
        if not found:
            return _err("Report not found", 404)
        analysis = records.get_analysis(db, analysis_id, farmer_id=g.farmer.id)
        return jsonify({
            "message": "Notes updated successfully",
            "report":  analysis.to_dict(),
        }), 200

    @app.route("/api/soil-analysis/report/<int:analysis_id>/archive", methods=["PUT"])
    @_require_farmer
    def archive_report(analysis_id: int):
        data     = _body()
        archived = parse_bool(data["archived"], "archived") if "archived" in data else True
        db = _get_db()
        with db:
            found = records.set_archived(db, analysis_id, archived, farmer_id=g.farmer.id)
        if not found:
            return _err("Report not found", 404)
        verb = "archived" if archived else "restored"
        return jsonify({"message": f"Report {verb} successfully"}), 200

    @app.route("/api/soil-analysis/download/<int:analysis_id>", methods=["GET"])
    @_require_farmer
    def download_report(analysis_id: int):
        db       = _get_db()
        analysis = records.get_analysis(db, analysis_id, farmer_id=g.farmer.id)
        if analysis is None:
            return _err("Report not found", 404)

        report = render_single_report(analysis, g.farmer, _now(), **_report_assets())

        # Counted only once the PDF exists
        with db:
            records.record_download(db, analysis_id, farmer_id=g.farmer.id)

        app.logger.info("Report %d downloaded by farmer %d", analysis_id, g.farmer.id)
        return _pdf_response(report)

    @app.route("/api/soil-analysis/export-all", methods=["GET"])
    @_require_farmer
    def export_all_reports():
        analyses = records.list_analyses(_get_db(), farmer_id=g.farmer.id)
        if not analyses:
            return _err("No reports found to export", 404)

        report = render_multi_report(analyses, g.farmer, _now(), **_report_assets())
        return _pdf_response(report)

    @app.route("/api/soil-analysis/statistics", methods=["GET"])
    @_require_farmer
    def analysis_statistics():
        analyses = records.list_analyses(_get_db(), farmer_id=g.farmer.id)
        return jsonify({"stats": farmer_stats(analyses)}), 200

    @app.route("/api/soil-analysis/seasonal-trends", methods=["GET"])
    @_require_farmer
    def analysis_seasonal_trends():
        analyses = records.list_analyses(_get_db(), farmer_id=g.farmer.id)
        return jsonify({"trends": seasonal_trends(analyses)}), 200

    # =========================================================================
    # Dashboard
    # =========================================================================
    @app.route("/api/dashboard/stats", methods=["GET"])
    @_require_farmer
    def get_dashboard_stats():
        analyses = records.list_analyses(_get_db(), farmer_id=g.farmer.id)
        return jsonify({"stats": dashboard_stats(g.farmer, analyses)}), 200

    @app.route("/api/dashboard/recent-activity", methods=["GET"])
    @_require_farmer
    def get_recent_activity():
        analyses = records.list_analyses(_get_db(), farmer_id=g.farmer.id)
        return jsonify({
            "activities": recent_activity(g.farmer, analyses, _now()),
        }), 200

    @app.route("/api/dashboard/recommendations", methods=["GET"])
    @_require_farmer
    def get_recommendations():
        analyses = records.list_analyses(_get_db(), farmer_id=g.farmer.id)
        latest   = max(analyses, key=lambda a: a.analysis_date) if analyses else None
        advice   = generate_recommendations(
            latest.sample if latest else None,
            latest.crop_recommendation.primary if latest else None,
        )
        return jsonify({"recommendations": advice}), 200

    # =========================================================================
    # Admin
    # =========================================================================
    @app.route("/admin/login", methods=["POST"])
    @_require_json
    def admin_login():
        username_cfg = app.config.get("ADMIN_USERNAME")
        hash_cfg     = app.config.get("ADMIN_PASSWORD_HASH")
        if not username_cfg or not hash_cfg:
            return _err("Admin login is not configured", 503)

        data     = _body()
        username = str(data.get("username") or "")
        password = str(data.get("password") or "")
        if not (hmac.compare_digest(username.encode(), username_cfg.encode())
                and check_password_hash(hash_cfg, password)):
            app.logger.warning("Failed admin login from %s", request.remote_addr)
            return _err("Invalid credentials", 401)

        session.clear()
        session["is_admin"] = True
        return jsonify({"message": "Login successful"}), 200

    @app.route("/admin/logout", methods=["POST"])
    def admin_logout():
        session.pop("is_admin", None)
        return jsonify({"message": "Logged out"}), 200

    @app.route("/api/admin/farmers", methods=["GET"])
    @_require_admin
    def admin_list_farmers():
        db     = _get_db()
        counts = records.analysis_counts(db)
        farmers = [
            dict(f.to_dict(), analysis_count=counts.get(f.id, 0))
            for f in records.list_farmers(db)
        ]
        return jsonify({"farmers": farmers}), 200

    @app.route("/api/admin/analyses", methods=["GET"])
    @_require_admin
    def admin_list_analyses():
        db      = _get_db()
        farmers = {f.id: f for f in records.list_farmers(db)}
        result  = []
        for analysis in records.list_analyses(db, include_archived=True):
            owner = farmers.get(analysis.farmer_id)
            body  = analysis.to_dict()
            body["farmer_name"]  = owner.full_name if owner else "Unknown"
            body["farmer_email"] = owner.email if owner else "N/A"
            result.append(body)
        return jsonify({"analyses": result}), 200

    @app.route("/api/admin/statistics", methods=["GET"])
    @_require_admin
    def admin_get_statistics():
        db = _get_db()
        stats = admin_statistics(
            records.list_farmers(db),
            records.list_analyses(db, include_archived=True),
            _now(),
        )
        return jsonify({"stats": stats}), 200

    @app.route("/api/admin/farmer/<int:farmer_id>", methods=["GET"])
    @_require_admin
    def admin_get_farmer(farmer_id: int):
        db     = _get_db()
        farmer = records.get_farmer(db, farmer_id)
        if farmer is None:
            return _err("Farmer not found", 404)
        return jsonify({
            "farmer":         farmer.to_dict(),
            "analysis_count": records.analysis_counts(db).get(farmer_id, 0),
            "login_history":  records.login_history(db, farmer_id),
        }), 200

    @app.route("/api/admin/farmer/<int:farmer_id>", methods=["PUT"])
    @_require_admin
    @_require_json
    def admin_update_farmer(farmer_id: int):
        updates = _collect_updates(_body(), _ADMIN_FIELDS)
        if not updates:
            return _err("No updatable fields supplied", 400)

        db = _get_db()
        if records.get_farmer(db, farmer_id) is None:
            return _err("Farmer not found", 404)
        conflict = records.find_conflict(db, email=updates.get("email"),
                                         phone=updates.get("phone"),
                                         exclude_id=farmer_id)
        if conflict:
            return _err(f"{conflict.capitalize()} already registered", 409, field=conflict)

        with db:
            records.update_farmer(db, farmer_id, updates)
        return jsonify({
            "message": "Farmer updated successfully",
            "farmer":  records.get_farmer(db, farmer_id).to_dict(),
        }), 200

    @app.route("/api/admin/farmer/<int:farmer_id>", methods=["DELETE"])
    @_require_admin
    def admin_delete_farmer(farmer_id: int):
        db = _get_db()
        with db:
            deleted = records.delete_farmer(db, farmer_id)
        if not deleted:
            return _err("Farmer not found", 404)
        app.logger.info("Admin deleted farmer %d", farmer_id)
        return jsonify({
            "message": "Farmer and all associated data deleted successfully",
        }), 200

    @app.route("/api/admin/farmer/<int:farmer_id>/toggle-status", methods=["PATCH"])
    @_require_admin
    def admin_toggle_farmer(farmer_id: int):
        db     = _get_db()
        farmer = records.get_farmer(db, farmer_id)
        if farmer is None:
            return _err("Farmer not found", 404)
        with db:
            records.update_farmer(db, farmer_id, {"is_active": not farmer.is_active})
        state = "deactivated" if farmer.is_active else "activated"
        return jsonify({
            "message":   f"Farmer {state} successfully",
            "is_active": not farmer.is_active,
        }), 200

    @app.route("/api/admin/analysis/<int:analysis_id>", methods=["GET"])
    @_require_admin
    def admin_get_analysis(analysis_id: int):
        db       = _get_db()
        analysis = records.get_analysis(db, analysis_id)
        if analysis is None:
            return _err("Analysis not found", 404)
        owner = records.get_farmer(db, analysis.farmer_id)
        body  = analysis.to_dict()
        body["farmer_name"]     = owner.full_name if owner else "Unknown"
        body["farmer_email"]    = owner.email if owner else "N/A"
        body["farmer_phone"]    = owner.phone if owner else None
        body["farmer_location"] = owner.location if owner else None
        return jsonify({"analysis": body}), 200

    @app.route("/api/admin/analysis/<int:analysis_id>", methods=["DELETE"])
    @_require_admin
    def admin_delete_analysis(analysis_id: int):
        db = _get_db()
        with db:
            deleted = records.delete_analysis(db, analysis_id)
        if not deleted:
            return _err("Analysis not found", 404)
        return jsonify({"message": "Analysis deleted successfully"}), 200

    @app.route("/api/admin/generate-report", methods=["GET"])
    @_require_admin
    def admin_generate_report():
        db       = _get_db()
        farmers  = records.list_farmers(db)
        analyses = records.list_analyses(db, include_archived=True)
        return jsonify({
            "report": {
                "generated_at":   _utcnow(),
                "total_farmers":  len(farmers),
                "total_analyses": len(analyses),
                "farmers":        [f.to_dict() for f in farmers],
                "analyses":       [a.to_dict() for a in analyses],
            },
        }), 200

    @app.route("/api/admin/bulk-delete-farmers", methods=["POST"])
    @_require_admin
    @_require_json
    def admin_bulk_delete_farmers():
        ids = parse_id_list(_body().get("farmerIds"), "farmerIds")
        db  = _get_db()
        with db:
            deleted = records.bulk_delete_farmers(db, ids)
        return jsonify({
            "message": f"{deleted} farmers and their data deleted successfully",
            "deleted": deleted,
        }), 200

    @app.route("/api/admin/bulk-delete-analyses", methods=["POST"])
    @_require_admin
    @_require_json
    def admin_bulk_delete_analyses():
        ids = parse_id_list(_body().get("analysisIds"), "analysisIds")
        db  = _get_db()
        with db:
            deleted = records.bulk_delete_analyses(db, ids)
        return jsonify({
            "message": f"{deleted} analyses deleted successfully",
            "deleted": deleted,
        }), 200


# ─────────────────────────────────────────────────────────────────────────────
# Error handlers
# ─────────────────────────────────────────────────────────────────────────────

def _register_error_handlers(app: Flask) -> None:

    @app.errorhandler(ValidationError)
    def validation_error(e):
        return _err(e.message, 400, field=e.field)

    @app.errorhandler(ReportDataError)
    def report_data_error(e):
        app.logger.error("Report generation failed: %s", e)
        return _err("Failed to generate PDF", 500)

    @app.errorhandler(404)
    def not_found(e):
        return _err("Route not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(e):
        return _err("Method not allowed", 405)

    @app.errorhandler(500)
    def internal_error(e):
        original = getattr(e, "original_exception", None)
        if original is not None:
            app.logger.error(
                "Unhandled error:\n%s",
                "".join(traceback.format_exception(type(original), original,
                                                   original.__traceback__)),
            )
        return _err("Internal server error", 500)


# ─────────────────────────────────────────────────────────────────────────────
# Entry point (development server)
# ─────────────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    app   = create_app()
    port  = int(os.getenv("SOILY_PORT",  5000))
    debug = os.getenv("SOILY_DEBUG", "0") == "1"

    print(f"\n{'='*60}")
    print("  SOILY Soil Mapping API")
    print(f"  Running on http://0.0.0.0:{port}")
    print(f"  Debug mode : {debug}")
    print(f"  DB path    : {app.config['DATABASE']}")
    print(f"{'='*60}\n")

    app.run(host="0.0.0.0", port=port, debug=debug)
