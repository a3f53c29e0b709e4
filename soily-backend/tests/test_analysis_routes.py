from services.report_layout import ReportDataError
from conftest import FIELD_RING, analysis_body, registration_body


def _save(client, **overrides):
    resp = client.post("/api/soil-analysis/save", json=analysis_body(**overrides))
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["analysis"]


def test_save_derives_scores_and_geometry(farmer_client):
    analysis = _save(farmer_client)
    assert analysis["soil_health"] == "Excellent"
    assert analysis["fertility_rating"] == 5.0
    assert analysis["season"] == "Kharif"
    assert analysis["data_source"] == "SoilGrids API"
    assert 2.7 < analysis["boundary"]["area"] < 3.1
    assert len(analysis["boundary"]["coordinates"]) == 4
    # computed server-side when the client sends none
    assert analysis["crop_recommendation"]["primary_crop"]["name"]


def test_save_keeps_consistent_client_recommendation(farmer_client):
    analysis = _save(farmer_client, cropRecommendation={
        "primaryCrop": {"name": "Sugarcane", "matchScore": 91, "fertilizer": "Urea"},
        "alternativeCrops": [{"name": "Rice", "matchScore": 70},
                             {"name": "Cotton", "matchScore": 85}],
    }, season="Year-round", notes="North plot")
    rec = analysis["crop_recommendation"]
    assert rec["primary_crop"]["name"] == "Sugarcane"
    assert [c["name"] for c in rec["alternative_crops"]] == ["Cotton", "Rice"]
    assert analysis["season"] == "Year-round"
    assert analysis["notes"] == "North plot"


def test_save_rejects_inconsistent_recommendation(farmer_client):
    resp = farmer_client.post("/api/soil-analysis/save", json=analysis_body(
        cropRecommendation={
            "primaryCrop": {"name": "Bajra", "matchScore": 40, "fertilizer": "Urea"},
            "alternativeCrops": [{"name": "Rice", "matchScore": 90}],
        },
    ))
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "cropRecommendation"


def test_save_validation_errors(farmer_client):
    resp = farmer_client.post("/api/soil-analysis/save",
                              json=analysis_body(boundary={"coordinates": FIELD_RING[:2]}))
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "coordinates"

    body = analysis_body()
    body["soilProperties"]["pH"] = 20
    resp = farmer_client.post("/api/soil-analysis/save", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "pH"

    resp = farmer_client.post("/api/soil-analysis/save", json=analysis_body(boundary=None))
    assert resp.get_json()["field"] == "boundary"


def test_analyze_field_preview(farmer_client):
    resp = farmer_client.post("/api/analyze-field", json={"coordinates": FIELD_RING})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["analysis"]["data_source"] == "Simulated"
    assert body["analysis"]["id"] is None
    assert body["scores"]["soil_health"] in ("Excellent", "Good", "Fair", "Poor", "Critical")
    assert 1 <= len(body["recommendations"]) <= 4
    # nothing persisted
    reports = farmer_client.get("/api/soil-analysis/reports").get_json()
    assert reports["reports"] == []


def test_analyze_field_requires_coordinates(farmer_client):
    resp = farmer_client.post("/api/analyze-field", json={})
    assert resp.status_code == 400


def test_reports_and_statistics(farmer_client):
    _save(farmer_client)
    _save(farmer_client, analysisDate="2025-12-01T10:00:00Z")

    body = farmer_client.get("/api/soil-analysis/reports").get_json()
    assert len(body["reports"]) == 2
    assert body["reports"][0]["season"] == "Rabi"      # newest first
    assert body["stats"]["total_analyses"] == 2
    assert body["stats"]["average_ph"] == 6.5

    stats = farmer_client.get("/api/soil-analysis/statistics").get_json()["stats"]
    assert stats["has_data"] is True

    trends = farmer_client.get("/api/soil-analysis/seasonal-trends").get_json()["trends"]
    assert sorted(t["season"] for t in trends) == ["Kharif", "Rabi"]


def test_statistics_without_analyses(farmer_client):
    stats = farmer_client.get("/api/soil-analysis/statistics").get_json()["stats"]
    assert stats["has_data"] is False
    assert stats["average_ph"] is None


def test_view_marks_report_viewed(farmer_client):
    analysis_id = _save(farmer_client)["id"]
    report = farmer_client.get(f"/api/soil-analysis/report/{analysis_id}").get_json()["report"]
    assert report["report_viewed"] is True
    assert farmer_client.get("/api/soil-analysis/report/9999").status_code == 404


def test_notes_and_archive(farmer_client):
    analysis_id = _save(farmer_client)["id"]
    resp = farmer_client.put(f"/api/soil-analysis/report/{analysis_id}/notes",
                             json={"notes": "Lime applied in May"})
    assert resp.get_json()["report"]["notes"] == "Lime applied in May"

    resp = farmer_client.put(f"/api/soil-analysis/report/{analysis_id}/archive", json={})
    assert resp.status_code == 200
    assert farmer_client.get("/api/soil-analysis/reports").get_json()["reports"] == []

    resp = farmer_client.put(f"/api/soil-analysis/report/{analysis_id}/archive",
                             json={"archived": False})
    assert resp.status_code == 200
    assert len(farmer_client.get("/api/soil-analysis/reports").get_json()["reports"]) == 1


def test_delete_report(farmer_client):
    analysis_id = _save(farmer_client)["id"]
    assert farmer_client.delete(f"/api/soil-analysis/report/{analysis_id}").status_code == 200
    assert farmer_client.delete(f"/api/soil-analysis/report/{analysis_id}").status_code == 404


def test_download_pdf_counts_downloads(farmer_client):
    analysis_id = _save(farmer_client)["id"]
    resp = farmer_client.get(f"/api/soil-analysis/download/{analysis_id}")
    assert resp.status_code == 200
    assert resp.mimetype == "application/pdf"
    assert resp.data.startswith(b"%PDF")
    assert resp.headers["Content-Disposition"] == \
        f"attachment; filename=soil-analysis-{analysis_id}.pdf"
    assert int(resp.headers["Content-Length"]) == len(resp.data)

    farmer_client.get(f"/api/soil-analysis/download/{analysis_id}")
    report = farmer_client.get(f"/api/soil-analysis/report/{analysis_id}").get_json()["report"]
    assert report["download_count"] == 2
    assert report["report_downloaded"] is True


def test_export_all(farmer_client):
    resp = farmer_client.get("/api/soil-analysis/export-all")
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "No reports found to export"

    _save(farmer_client)
    _save(farmer_client)
    resp = farmer_client.get("/api/soil-analysis/export-all")
    assert resp.status_code == 200
    assert resp.data.startswith(b"%PDF")
    assert "all-soil-reports-" in resp.headers["Content-Disposition"]


def test_farmers_cannot_see_each_others_reports(app, farmer_client):
    analysis_id = _save(farmer_client)["id"]

    other = app.test_client()
    other.post("/auth/register", json=registration_body(
        email="meera@example.com", phone="9011122233"))
    other.post("/auth/login", json={"email": "meera@example.com",
                                    "password": registration_body()["password"]})
    assert other.get(f"/api/soil-analysis/report/{analysis_id}").status_code == 404
    assert other.get(f"/api/soil-analysis/download/{analysis_id}").status_code == 404
    assert other.delete(f"/api/soil-analysis/report/{analysis_id}").status_code == 404


def test_save_rejects_infinite_measurements(farmer_client):
    body = analysis_body()
    body["soilProperties"]["nitrogen"] = float("inf")
    resp = farmer_client.post("/api/soil-analysis/save", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "nitrogen"
    assert farmer_client.get("/api/soil-analysis/reports").get_json()["reports"] == []


def test_analysis_dates_stored_in_utc(farmer_client):
    soil = dict(analysis_body()["soilProperties"], pH=8.6)
    earlier = _save(farmer_client, analysisDate="2025-07-20T09:00:00+05:30")
    later   = _save(farmer_client, analysisDate="2025-07-20T05:00:00Z",
                    soilProperties=soil)
    assert earlier["analysis_date"] == "2025-07-20T03:30:00+00:00"
    assert later["analysis_date"] == "2025-07-20T05:00:00+00:00"

    reports = farmer_client.get("/api/soil-analysis/reports").get_json()["reports"]
    assert [r["id"] for r in reports] == [later["id"], earlier["id"]]

    advice = farmer_client.get("/api/dashboard/recommendations").get_json()["recommendations"]
    assert advice[0]["title"] == "Soil pH Too Alkaline"


def test_season_follows_local_calendar_date(farmer_client):
    # 1 November locally is still 31 October in UTC
    analysis = _save(farmer_client, analysisDate="2025-11-01T01:00:00+05:30")
    assert analysis["season"] == "Rabi"
    assert analysis["analysis_date"] == "2025-10-31T19:30:00+00:00"


def test_failed_render_does_not_count_download(farmer_client, monkeypatch):
    analysis_id = _save(farmer_client)["id"]

    def broken_render(*args, **kwargs):
        raise ReportDataError("analysis has no crop recommendation")

    monkeypatch.setattr("app.render_single_report", broken_render)
    resp = farmer_client.get(f"/api/soil-analysis/download/{analysis_id}")
    assert resp.status_code == 500
    assert resp.get_json()["error"] == "Failed to generate PDF"

    report = farmer_client.get(f"/api/soil-analysis/report/{analysis_id}").get_json()["report"]
    assert report["download_count"] == 0
    assert report["report_downloaded"] is False
