"""API tests for login, current operator and logout."""
from fastapi.testclient import TestClient

from conftest import OPERATOR_PASSWORD
from pharmadesk.api import patients
from pharmadesk.main import app


def login(client, email, password=OPERATOR_PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


def test_login_me_logout(client, operator):
    resp = login(client, operator.email)
    assert resp.status_code == 200
    body = resp.json()
    assert body["operator_id"] == operator.id
    headers = {"Authorization": f"Bearer {body['access_token']}"}

    me = client.get("/api/v1/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == operator.email
    assert me.json()["last_login"] is not None

    assert client.post("/api/v1/auth/logout", headers=headers).status_code == 204
    # Tokens from the ended session are rejected
    assert client.get("/api/v1/auth/me", headers=headers).status_code == 401


def test_new_login_invalidates_previous_token(client, operator, auth_headers):
    assert client.get("/api/v1/auth/me", headers=auth_headers).status_code == 200
    assert login(client, operator.email).status_code == 200
    assert client.get("/api/v1/auth/me", headers=auth_headers).status_code == 401


def test_wrong_password(client, operator):
    resp = login(client, operator.email, "wrong")
    assert resp.status_code == 401
    assert resp.json() == {
        "detail": "Invalid email or password. Please try again.",
        "code": "auth/wrong-password",
    }


def test_unknown_email(client):
    resp = login(client, "nobody@example.com")
    assert resp.status_code == 401
    assert resp.json()["code"] == "auth/user-not-found"


def test_invalid_email_format(client):
    resp = login(client, "pharmacist")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid email format."


def test_protected_routes_need_a_token(client):
    assert client.get("/api/v1/patients/").status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert client.get("/api/v1/conversations", headers=bad).status_code == 401


def test_unexpected_errors_hide_internal_detail(db_session, auth_headers, monkeypatch):
    def broken(db, query=None):
        raise RuntimeError("sqlite path /var/secret/db locked")

    monkeypatch.setattr(patients.dashboard, "list_patients", broken)
    with TestClient(app, raise_server_exceptions=False) as unsafe_client:
        resp = unsafe_client.get("/api/v1/patients/", headers=auth_headers)

    assert resp.status_code == 500
    body = resp.json()
    assert body["recovery"] == "reload"
    assert body["error"] == "An unknown error occurred"
    assert "secret" not in resp.text
