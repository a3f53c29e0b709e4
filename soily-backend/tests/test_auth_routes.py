from conftest import FARMER_PASSWORD, registration_body


def _login(client, email="ramesh@example.com", password=FARMER_PASSWORD, **extra):
    return client.post("/auth/login", json=dict(email=email, password=password, **extra))


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "running"
    assert resp.get_json()["db_ready"] is True


def test_register_and_login(client):
    resp = client.post("/auth/register", json=registration_body())
    assert resp.status_code == 201
    assert isinstance(resp.get_json()["farmer_id"], int)

    resp = _login(client, remember=True)
    assert resp.status_code == 200
    farmer = resp.get_json()["farmer"]
    assert farmer["email"] == "ramesh@example.com"
    assert "password_hash" not in farmer

    profile = client.get("/api/farmer/profile").get_json()["farmer"]
    assert len(profile["recent_logins"]) == 1
    assert profile["last_login"] is not None


def test_register_requires_json(client):
    resp = client.post("/auth/register", data="fullName=x")
    assert resp.status_code == 415


def test_register_missing_fields(client):
    resp = client.post("/auth/register", json={"email": "a@b.co"})
    assert resp.status_code == 400
    assert "fullName" in resp.get_json()["error"]


def test_register_invalid_phone(client):
    resp = client.post("/auth/register", json=registration_body(phone="12345"))
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "phone"


def test_duplicate_email_and_phone(client):
    client.post("/auth/register", json=registration_body())
    resp = client.post("/auth/register",
                       json=registration_body(phone="9000000001"))
    assert resp.status_code == 409
    assert resp.get_json()["field"] == "email"

    resp = client.post("/auth/register",
                       json=registration_body(email="other@example.com"))
    assert resp.status_code == 409
    assert resp.get_json()["field"] == "phone"


def test_wrong_password(client):
    client.post("/auth/register", json=registration_body())
    resp = _login(client, password="wrong-password")
    assert resp.status_code == 401
    assert resp.get_json()["field"] == "password"
    assert _login(client, email="nobody@example.com").status_code == 401


def test_logout_ends_session(farmer_client):
    assert farmer_client.get("/api/farmer/profile").status_code == 200
    assert farmer_client.post("/auth/logout").status_code == 200
    assert farmer_client.get("/api/farmer/profile").status_code == 401


def test_protected_route_without_session(client):
    resp = client.get("/api/dashboard/stats")
    assert resp.status_code == 401
    body = resp.get_json()
    assert body["status"] == 401
    assert "timestamp" in body


def test_update_profile(farmer_client):
    resp = farmer_client.put("/api/farmer/profile", json={
        "fullName": "Ramesh K. Jadhav",
        "address": {"city": "Satara", "pincode": "415001"},
        "crops": [{"name": "Jowar", "season": "Rabi", "area": 2}],
        "irrigationType": "Drip",
        "notifications": {"sms": False},
    })
    assert resp.status_code == 200
    farmer = resp.get_json()["farmer"]
    assert farmer["full_name"] == "Ramesh K. Jadhav"
    assert farmer["address"]["country"] == "India"
    assert farmer["crops"][0]["season"] == "Rabi"
    assert farmer["notifications"] == {"email": True, "sms": False, "push": True}


def test_update_profile_rejects_bad_values(farmer_client):
    resp = farmer_client.put("/api/farmer/profile", json={"irrigationType": "Canal"})
    assert resp.status_code == 400
    assert resp.get_json()["field"] == "irrigationType"
    assert farmer_client.put("/api/farmer/profile", json={}).status_code == 400


def test_update_farm_details(farmer_client):
    resp = farmer_client.put("/api/farmer/farm-details", json={
        "location": "Karad", "farmSize": "large", "notes": "Terraced plots",
    })
    assert resp.status_code == 200
    farmer = resp.get_json()["farmer"]
    assert farmer["location"] == "Karad"
    assert farmer["farm_size_description"] == "10-50 acres"
    assert farmer["notes"] == "Terraced plots"


def test_set_language(farmer_client):
    resp = farmer_client.post("/api/language", json={"language": "mr"})
    assert resp.status_code == 200
    assert resp.get_json()["language"] == "mr"
    assert farmer_client.post("/api/language", json={"language": "fr"}).status_code == 400


def test_change_password(farmer_client):
    resp = farmer_client.post("/api/farmer/change-password", json={
        "currentPassword": "not-it", "newPassword": "another-pass-1",
    })
    assert resp.status_code == 401

    resp = farmer_client.post("/api/farmer/change-password", json={
        "currentPassword": FARMER_PASSWORD, "newPassword": "short",
    })
    assert resp.status_code == 400

    resp = farmer_client.post("/api/farmer/change-password", json={
        "currentPassword": FARMER_PASSWORD, "newPassword": "another-pass-1",
    })
    assert resp.status_code == 200
    farmer_client.post("/auth/logout")
    assert _login(farmer_client, password="another-pass-1").status_code == 200


def test_delete_account(farmer_client):
    assert farmer_client.delete("/api/farmer/delete-account").status_code == 200
    assert farmer_client.get("/api/farmer/profile").status_code == 401
    assert _login(farmer_client).status_code == 401


def test_unknown_route_and_method(client):
    assert client.get("/api/nothing-here").status_code == 404
    assert client.get("/auth/login").status_code == 405
