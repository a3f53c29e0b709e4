from conftest import analysis_body


def test_dashboard_for_new_farmer(farmer_client):
    stats = farmer_client.get("/api/dashboard/stats").get_json()["stats"]
    assert stats["farm_area"] == 2.0            # declared "small"
    assert stats["active_maps"] == 0
    assert stats["soil_health"] is None

    feed = farmer_client.get("/api/dashboard/recent-activity").get_json()["activities"]
    assert feed[0]["title"] == "Welcome to SOILY!"

    advice = farmer_client.get("/api/dashboard/recommendations").get_json()["recommendations"]
    assert [a["title"] for a in advice][0] == "Create Your First Soil Map"


def test_dashboard_after_analysis(farmer_client):
    farmer_client.post("/api/soil-analysis/save", json=analysis_body())

    stats = farmer_client.get("/api/dashboard/stats").get_json()["stats"]
    assert stats["active_maps"] == 1
    assert stats["soil_health"] == 50             # fertility 5.0 of 10
    assert stats["recommendations"] >= 1

    feed = farmer_client.get("/api/dashboard/recent-activity").get_json()["activities"]
    assert feed[0]["title"] == "Soil Analysis Completed"
    assert "Clay Loam" in feed[0]["desc"]

    advice = farmer_client.get("/api/dashboard/recommendations").get_json()["recommendations"]
    kinds = [a["kind"] for a in advice]
    assert kinds[:3] == ["ph", "npk", "crop"]
    assert advice[1]["title"] == "Fertilizer Application Needed"
