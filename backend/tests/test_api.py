import pytest
from fastapi.testclient import TestClient

import backend.config as config
import backend.main as main
import backend.routers.core as core
import backend.security as security


@pytest.fixture()
def client(test_db):
    with TestClient(main.app) as c:
        yield c


@pytest.fixture()
def auth_headers(client):
    res = client.post(
        "/auth/login",
        json={
            "username": config.ADMIN_USERNAME,
            "password": config.ADMIN_PASSWORD,
        },
    )
    assert res.status_code == 200
    token = res.json()["access_token"]
    client.cookies.clear()
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def published_form(client, auth_headers):
    res = client.post(
        "/forms",
        json={"title": "Launch Night", "location": "Main Hall", "max_group_size": 4},
        headers=auth_headers,
    )
    assert res.status_code == 201
    form_id = res.json()["id"]
    res = client.post(f"/forms/{form_id}/publish", headers=auth_headers)
    assert res.status_code == 200
    return res.json()


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


def test_debug_dbpath_disabled_by_default(client, auth_headers):
    res = client.get("/debug/dbpath", headers=auth_headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "Not found."


def test_debug_dbpath_requires_session_when_enabled(client, monkeypatch, auth_headers):
    monkeypatch.setattr(core, "ENABLE_DEBUG_ENDPOINTS", True)

    res = client.get("/debug/dbpath")
    assert res.status_code == 401

    res = client.get("/debug/dbpath", headers=auth_headers)
    assert res.status_code == 200
    assert "db_path" in res.json()


def test_login_rejects_invalid_credentials(client):
    res = client.post(
        "/auth/login",
        json={"username": config.ADMIN_USERNAME, "password": "wrong-password"},
    )
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid admin credentials."


def test_login_sets_http_only_session_cookie(client):
    res = client.post(
        "/auth/login",
        json={"username": config.ADMIN_USERNAME, "password": config.ADMIN_PASSWORD},
    )
    assert res.status_code == 200
    set_cookie = res.headers["set-cookie"]
    assert set_cookie.startswith(f"{config.SESSION_COOKIE_NAME}=")
    assert "HttpOnly" in set_cookie
    assert "samesite=lax" in set_cookie.lower()

    # cookie alone is enough for admin routes
    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["username"] == config.ADMIN_USERNAME

    client.post("/auth/logout")
    assert client.get("/auth/me").status_code == 401


def test_admin_routes_require_session(client):
    for method, path in [
        ("get", "/forms"),
        ("get", "/registrations"),
        ("get", "/stats"),
        ("post", "/registrations/ABCDEF12/qr"),
    ]:
        res = getattr(client, method)(path)
        assert res.status_code == 401
        assert res.json()["detail"] == "Missing session."

    res = client.post("/scan", json={"ticket_data": "ABCDEF12"}, headers={"Authorization": "Basic abc"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid authorization scheme."


def test_tampered_and_expired_tokens_are_rejected(client, monkeypatch):
    token, _ = security.issue_session_token("admin")
    payload_b64, signature = token.split(".", 1)
    forged = f"{payload_b64}x.{signature}"
    res = client.get("/registrations", headers={"Authorization": f"Bearer {forged}"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid or expired session."

    monkeypatch.setattr(security, "AUTH_TOKEN_TTL_SECONDS", -10)
    expired, _ = security.issue_session_token("admin")
    assert security.decode_session_token(expired) is None


def test_published_form_is_public(client, published_form):
    res = client.get("/forms/published")
    assert res.status_code == 200
    assert res.json()["id"] == published_form["id"]
    assert res.json()["is_published"] is True


def test_no_published_form(client):
    res = client.get("/forms/published")
    assert res.status_code == 404

    res = client.post("/register", json={"name": "A", "email": "a@example.com"})
    assert res.status_code == 404


def test_form_crud_over_http(client, auth_headers):
    res = client.post("/forms", json={"title": "Draft"}, headers=auth_headers)
    assert res.status_code == 201
    form_id = res.json()["id"]

    res = client.put(f"/forms/{form_id}", json={"description": "Updated"}, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["description"] == "Updated"
    assert res.json()["title"] == "Draft"

    res = client.put(f"/forms/{form_id}", json={"title": " "}, headers=auth_headers)
    assert res.status_code == 400

    res = client.get("/forms", headers=auth_headers)
    assert [f["id"] for f in res.json()] == [form_id]

    assert client.delete(f"/forms/{form_id}", headers=auth_headers).status_code == 200
    assert client.delete(f"/forms/{form_id}", headers=auth_headers).status_code == 404
    assert client.get(f"/forms/{form_id}", headers=auth_headers).status_code == 404
    assert client.post(f"/forms/{form_id}/publish", headers=auth_headers).status_code == 404


def test_publish_switches_forms(client, auth_headers, published_form):
    res = client.post("/forms", json={"title": "Second"}, headers=auth_headers)
    second_id = res.json()["id"]

    res = client.post(f"/forms/{second_id}/publish", headers=auth_headers)
    assert res.status_code == 200

    forms = client.get("/forms", headers=auth_headers).json()
    assert [f["id"] for f in forms if f["is_published"]] == [second_id]

    res = client.post(f"/forms/{second_id}/unpublish", headers=auth_headers)
    assert res.json()["is_published"] is False
    assert client.get("/forms/published").status_code == 404


def test_public_registration_rules(client, auth_headers, published_form):
    res = client.post(
        "/register",
        json={"name": "Grace Hopper", "email": "grace@example.com", "group_size": 2},
    )
    assert res.status_code == 201
    body = res.json()
    assert body["form_id"] == published_form["id"]
    assert body["max_scans"] == 2
    assert body["has_qr"] is False

    res = client.post(
        "/register",
        json={"name": "Too Many", "email": "many@example.com", "group_size": 5},
    )
    assert res.status_code == 400

    res = client.post("/register", json={"name": "Zero", "email": "z@example.com", "group_size": 0})
    assert res.status_code == 422

    draft = client.post("/forms", json={"title": "Draft"}, headers=auth_headers).json()
    res = client.post(
        "/register",
        json={"name": "Early", "email": "early@example.com", "form_id": draft["id"]},
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "Form is not accepting registrations."


def test_ticket_flow_issue_scan_and_limit(client, auth_headers, published_form):
    reg = client.post(
        "/register",
        json={"name": "Group Lead", "email": "lead@example.com", "group_size": 3},
    ).json()

    res = client.post(f"/registrations/{reg['id']}/qr", headers=auth_headers)
    assert res.status_code == 200
    issued = res.json()
    assert issued["registration"]["has_qr"] is True
    assert issued["qr_image"].startswith("data:image/png;base64,")
    qr_payload = issued["qr_code_data"]

    res = client.post(f"/registrations/{reg['id']}/qr", headers=auth_headers)
    assert res.status_code == 409

    shown = client.get(f"/registrations/{reg['id']}/qr", headers=auth_headers).json()
    assert shown["qr_code_data"] == qr_payload

    for expected in (1, 2, 3):
        res = client.post("/scan", json={"ticket_data": qr_payload}, headers=auth_headers)
        assert res.status_code == 200
        body = res.json()
        assert body["valid"] is True
        assert body["registration"]["scans"] == expected

    res = client.post("/scan", json={"ticket_data": qr_payload}, headers=auth_headers)
    body = res.json()
    assert body["valid"] is False
    assert body["message"] == "scan limit reached"
    assert body["registration"]["status"] == "checked-in"

    stats = client.get("/stats", headers=auth_headers).json()
    assert stats == {
        "total_registrations": 1,
        "qr_codes_generated": 1,
        "total_entries": 3,
        "active_registrations": 1,
    }
    form_stats = client.get(f"/forms/{published_form['id']}/stats", headers=auth_headers).json()
    assert form_stats == stats


def test_scan_revoked_and_unknown_tickets(client, auth_headers):
    reg = client.post(
        "/registrations",
        json={"name": "Walk In", "email": "walkin@example.com", "group_size": 5},
        headers=auth_headers,
    ).json()
    assert reg["form_id"] is None

    res = client.post(f"/registrations/{reg['id']}/revoke", headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["status"] == "revoked"

    res = client.post("/scan", json={"ticket_data": reg["id"]}, headers=auth_headers)
    assert res.status_code == 200
    assert res.json()["valid"] is False
    assert res.json()["message"] == "ticket revoked"

    res = client.post("/scan", json={"ticket_data": "00000000"}, headers=auth_headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "ticket not found"

    res = client.post("/scan", json={"ticket_data": "TICKET:00000000:bad"}, headers=auth_headers)
    assert res.status_code == 400


def test_registration_listing_and_delete(client, auth_headers, published_form):
    legacy = client.post(
        "/registrations",
        json={"name": "Legacy", "email": "legacy@example.com"},
        headers=auth_headers,
    ).json()
    attached = client.post(
        "/register",
        json={"name": "Attached", "email": "attached@example.com"},
    ).json()

    rows = client.get("/registrations", headers=auth_headers).json()
    assert [r["id"] for r in rows] == [attached["id"], legacy["id"]]

    rows = client.get(f"/forms/{published_form['id']}/registrations", headers=auth_headers).json()
    assert {r["id"] for r in rows} == {attached["id"], legacy["id"]}

    assert client.get(f"/registrations/{legacy['id']}", headers=auth_headers).status_code == 200
    assert client.delete(f"/registrations/{legacy['id']}", headers=auth_headers).status_code == 200
    assert client.get(f"/registrations/{legacy['id']}", headers=auth_headers).status_code == 404
    assert client.delete(f"/registrations/{legacy['id']}", headers=auth_headers).status_code == 404
