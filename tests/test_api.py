import base64

from src.error_handler import UNREACHABLE_MESSAGE
from src.integrations.contracts.interfaces import UserRole
from src.utils.principal import Principal

FORM = {
    "name": "Neha Gupta",
    "email": "neha@example.com",
    "phone": "98765 43210",
    "address": "Delhi",
    "insurance_interests": ["health", "life"],
    "feedback": "",
}


def _login(client, credential):
    response = client.post("/admin-login/login", json={"credential": credential})
    assert response.status_code == 200
    return response.json()


def _admin_client(api_client, canister, credential="alice"):
    canister.roles[Principal.self_authenticating(credential.encode())] = UserRole.ADMIN
    client = api_client()
    assert _login(client, credential)["step"] == "success"
    return client


# ---------------------------------------------------------------------------
# Public site
# ---------------------------------------------------------------------------

def test_home_page_counts_visit(api_client, canister):
    response = api_client().get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["maintenance"] is False
    assert body["backend_available"] is True
    assert body["hero"]["title"] == canister.site_content.home_title
    assert canister.visitor_count == 1
    assert response.cookies.get("gb_session")


def test_home_page_falls_back_when_backend_down(api_client, canister):
    canister.available = False
    body = api_client().get("/").json()

    assert body["backend_available"] is False
    assert body["hero"]["title"] == "GB Insurance"


def test_health_endpoint(api_client):
    body = api_client().get("/health").json()
    assert body["status"] == "healthy"
    assert body["backend"] == "ok"
    assert body["session_store"] == "connected"


def test_api_key_protection(api_client, monkeypatch):
    monkeypatch.setenv("API_KEYS", "key-1")
    client = api_client()

    assert client.get("/").status_code == 200
    assert client.get("/api/v1/forms/options").status_code == 401
    assert client.get("/api/v1/forms/options", headers={"X-API-KEY": "key-1"}).status_code == 200


# ---------------------------------------------------------------------------
# Lead-capture form
# ---------------------------------------------------------------------------

def test_form_options(api_client):
    body = api_client().get("/api/v1/forms/options").json()
    assert "personalAccident" in body["insurance_types"]
    assert body["attachments"]["max_bytes"] == 5 * 1024 * 1024


def test_submit_form(api_client, canister):
    payload = {**FORM, "attachments": [{"filename": "id.pdf", "data": base64.b64encode(b"%PDF").decode()}]}
    response = api_client().post("/api/v1/forms", json=payload)

    assert response.status_code == 201
    body = response.json()
    assert body["submitted"] is True
    assert body["notifications"][0]["level"] == "success"
    assert canister.forms[1].phone == "9876543210"


def test_submit_form_validation_error(api_client, canister):
    response = api_client().post("/api/v1/forms", json={**FORM, "email": "nope"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "validation_error"
    assert detail["field_errors"]["email"] == "Please enter a valid email address"
    assert canister.forms == {}


def test_submit_form_rejects_malformed_attachments(api_client, canister):
    response = api_client().post("/api/v1/forms", json={**FORM, "attachments": "photo.jpg"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "validation_error"
    assert "attachments" in detail["field_errors"]
    assert canister.forms == {}


def test_submit_form_backend_down(api_client, canister):
    canister.available = False
    response = api_client().post("/api/v1/forms", json=FORM)

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["error"] == "unreachable"
    assert detail["notifications"][0]["title"].startswith("Failed to submit form")


# ---------------------------------------------------------------------------
# Admin login
# ---------------------------------------------------------------------------

def test_first_admin_bootstrap_flow(api_client, canister):
    client = api_client()

    page = client.get("/admin-login").json()
    assert page["step"] == "idle"
    assert page["show_login_button"] is True

    body = _login(client, "alice")
    assert body["step"] == "unauthorized"
    assert body["show_create_first_admin"] is True

    body = client.post("/admin-login/create-first-admin").json()
    assert body["step"] == "success"
    assert body["redirect_to"] == "/dashboard"
    assert canister.admins() == [Principal.self_authenticating(b"alice")]

    assert client.get("/dashboard").status_code == 200


def test_create_first_admin_out_of_order(api_client):
    response = api_client().post("/admin-login/create-first-admin")
    assert response.status_code == 409


def test_second_user_is_denied_then_uses_password(api_client, canister):
    _admin_client(api_client, canister, "alice")
    bob = api_client()

    assert _login(bob, "bob")["step"] == "unauthorized"
    assert bob.post("/admin-login/create-first-admin").json()["step"] == "error"
    assert bob.get("/dashboard").status_code == 403

    assert bob.post("/admin-login/password", json={"password": "wrong"}).json()["step"] == "error"
    assert bob.post("/admin-login/password", json={"password": "s3cret-admin"}).json()["step"] == "success"
    assert bob.get("/dashboard").status_code == 200


def test_password_login_needs_identity(api_client):
    response = api_client().post("/admin-login/password", json={"password": "s3cret-admin"})
    assert response.status_code == 401


def test_logout(api_client, canister):
    client = _admin_client(api_client, canister)

    body = client.post("/admin-login/logout").json()
    assert body["redirect_to"] == "/"
    assert body["is_authenticated"] is False
    assert client.get("/dashboard").status_code == 401


def test_session_header_is_honoured(api_client, canister):
    client = _admin_client(api_client, canister)
    session_id = client.cookies.get("gb_session")

    other = api_client()
    assert other.get("/dashboard").status_code == 401
    assert other.get("/dashboard", headers={"X-Session-ID": session_id}).status_code == 200


def test_admin_check_failure_is_shown_on_login_page(api_client, canister):
    client = _admin_client(api_client, canister)
    canister.available = False

    response = client.get("/dashboard")
    assert response.status_code == 503
    assert response.json()["detail"]["redirect_to"] == "/admin-login"

    page = client.get("/admin-login").json()
    assert page["step"] == "error"
    assert page["error_message"] == UNREACHABLE_MESSAGE

    canister.available = True
    assert client.post("/admin-login/retry").json()["step"] == "idle"


def test_reset_admin_password(api_client, canister):
    anonymous = api_client()
    assert anonymous.post("/admin-login/reset", json={"reset_code": "RESET-1234", "new_password": "n"}).status_code == 401

    client = api_client()
    _login(client, "resetter")
    wrong = client.post("/admin-login/reset", json={"reset_code": "WRONG", "new_password": "n"})
    assert wrong.status_code == 400
    assert wrong.json()["detail"]["error"]["message"] == "Reset failed. Please check your reset code and try again."

    ok = client.post("/admin-login/reset", json={"reset_code": "RESET-1234", "new_password": "fresh"})
    assert ok.status_code == 200
    assert ok.json()["state"] == "success"
    assert canister.admin_password == "fresh"


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

def test_dashboard_lists_filters_and_counts(api_client, canister):
    public = api_client()
    public.post("/api/v1/forms", json=FORM)
    public.post("/api/v1/forms", json={**FORM, "name": "Amit Shah", "email": "amit@example.com", "insurance_interests": ["travel"]})

    client = _admin_client(api_client, canister)
    body = client.get("/dashboard").json()
    assert body["count"] == 2
    assert body["stats"]["total"] == 2
    assert body["stats"]["today"] == 2
    assert body["refresh_interval_seconds"] == 30
    assert body["forms"][0]["name"] == "Amit Shah"

    filtered = client.get("/dashboard", params={"insurance_type": "health", "sort": "name"}).json()
    assert [f["name"] for f in filtered["forms"]] == ["Neha Gupta"]
    assert filtered["filters"] == {"search": "", "insurance_type": "health", "sort": "name"}

    assert client.get("/dashboard", params={"search": "amit@"}).json()["count"] == 1
    assert client.get("/dashboard", params={"insurance_type": "pets"}).status_code == 422

    form = client.get("/dashboard/forms/1").json()
    assert form["insuranceInterests"] == ["health", "life"]
    assert client.get("/dashboard/forms/99").status_code == 404


def test_dashboard_requires_login(api_client):
    response = api_client().get("/dashboard")
    assert response.status_code == 401
    assert response.json()["detail"]["redirect_to"] == "/admin-login"


def test_manage_admins(api_client, canister):
    client = _admin_client(api_client, canister)
    me = Principal.self_authenticating(b"alice").to_text()
    other = Principal.self_authenticating(b"other").to_text()

    admins = client.get("/dashboard/admins").json()["admins"]
    assert admins == [{"principal": me, "display": admins[0]["display"], "is_current_user": True}]

    assert client.post("/dashboard/admins", json={"principal": "2vxsx-fae"}).status_code == 422
    assert client.post("/dashboard/admins", json={"principal": "garbage"}).status_code == 422

    added = client.post("/dashboard/admins", json={"principal": other})
    assert added.status_code == 201
    assert added.json()["notifications"][0]["title"] == "Admin added successfully"
    assert {a["principal"] for a in client.get("/dashboard/admins").json()["admins"]} == {me, other}

    assert client.delete(f"/dashboard/admins/{other}").status_code == 200
    assert canister.roles[Principal.from_text(other)] == UserRole.USER


def test_settings_and_content(api_client, canister):
    client = _admin_client(api_client, canister)

    settings = client.get("/dashboard/settings").json()
    assert settings["contactEmail"] == canister.settings.contact_email

    bad = client.put("/dashboard/settings", json={"contact_email": "", "office_hours": "9-5"})
    assert bad.status_code == 422

    updated = client.put(
        "/dashboard/settings",
        json={"contact_email": "care@gb.in", "office_hours": "24x7", "maintenance_mode": True},
    )
    assert updated.status_code == 200
    assert canister.settings.maintenance_mode is True

    home = api_client().get("/").json()
    assert home["maintenance"] is True

    image = {"filename": "hero.png", "data": base64.b64encode(b"png").decode()}
    content = client.put(
        "/dashboard/content",
        json={"home_title": "GB", "home_description": "Cover", "hero_text": "Hi", "hero_image": image},
    )
    assert content.status_code == 200
    assert content.json()["content"]["heroImage"].startswith("/blobs/")
    assert canister.site_content.home_title == "GB"


def test_users_and_profile(api_client, canister):
    client = _admin_client(api_client, canister)

    profile = client.get("/dashboard/profile").json()
    assert profile["needs_setup"] is True

    bad = client.put("/dashboard/profile", json={"name": "Alice", "email": "alice@"})
    assert bad.status_code == 422
    assert bad.json()["detail"]["field_errors"]["email"] == "Please enter a valid email address"

    saved = client.put("/dashboard/profile", json={"name": "Alice", "email": "alice@gb.in"})
    assert saved.status_code == 200
    assert saved.json()["profile"]["role"] == "Administrator"
    assert client.get("/dashboard/profile").json()["needs_setup"] is False

    me = Principal.self_authenticating(b"alice").to_text()
    users = client.get("/dashboard/users").json()["users"]
    assert [u["principal"] for u in users] == [me]

    updated = client.put(f"/dashboard/users/{me}", json={"name": "Alice K", "email": "alice@gb.in", "role": "admin"})
    assert updated.status_code == 200
    assert canister.profiles[Principal.from_text(me)].name == "Alice K"

    assert client.put(f"/dashboard/users/{me}", json={"name": "", "email": "", "role": ""}).status_code == 422


def test_profile_page_only_needs_login(api_client):
    client = api_client()
    _login(client, "newcomer")
    assert client.get("/dashboard/profile").status_code == 200
    assert client.get("/dashboard/users").status_code == 403
