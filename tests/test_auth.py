from __future__ import annotations
import pytest
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import User
from blueprints.auth import routes as auth_routes

@pytest.fixture()
def client_app():
    app = create_app("test")
    app.config.update(AUTH_RL_MAX=3, AUTH_RL_WINDOW=60)  # агрессивный лимит для теста
    auth_routes._login_attempts.clear()
    with app.app_context():
        db.create_all()
        db.session.add_all([
            User(email="admin@example.com", password_hash=generate_password_hash("adminpass"), role="ADMIN", is_active=True),
            User(email="prof@example.com", password_hash=generate_password_hash("profpass"), role="PROFESSOR", is_active=True),
            User(email="gone@example.com", password_hash=generate_password_hash("gonepass"), role="PROFESSOR", is_active=False),
        ])
        db.session.commit()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
    auth_routes._login_attempts.clear()

@pytest.fixture()
def client(client_app):
    return client_app.test_client()

def _get_csrf(client):
    r = client.get("/api/v1/csrf")
    assert r.status_code == 200
    return r.get_json()["csrf"]

def _login(client, email, password):
    csrf = _get_csrf(client)
    return client.post("/api/v1/auth/login", json={"email": email, "password": password},
                       headers={"X-CSRF-Token": csrf}), csrf

def test_unauthorized_401(client):
    r = client.get("/api/v1/auth/me")
    assert r.status_code == 401
    assert r.get_json()["errors"][0]["code"] == "UNAUTHORIZED"

def test_forbidden_403(client):
    r, csrf = _login(client, "prof@example.com", "profpass")
    assert r.status_code == 200
    # admin-эндпоинт для PROFESSOR закрыт
    r2 = client.post("/api/v1/admin/shooting-types", json={"name": "VR"}, headers={"X-CSRF-Token": csrf})
    assert r2.status_code == 403
    assert r2.get_json()["errors"][0]["code"] == "FORBIDDEN"

def test_login_success_and_me(client):
    r, _ = _login(client, "Admin@Example.com ", "adminpass")
    assert r.status_code == 200
    js = r.get_json()
    assert js["ok"] is True and js["user"]["role"] == "ADMIN"

    r2 = client.get("/api/v1/auth/me")
    assert r2.status_code == 200
    assert r2.get_json()["user"]["email"] == "admin@example.com"

def test_bad_credentials_and_inactive(client):
    r, _ = _login(client, "prof@example.com", "wrong")
    assert r.status_code == 401
    r, _ = _login(client, "gone@example.com", "gonepass")
    assert r.status_code == 403
    r, _ = _login(client, "", "")
    assert r.status_code == 400

def test_rate_limit_login(client):
    csrf = _get_csrf(client)
    for _ in range(3):  # AUTH_RL_MAX
        client.post("/api/v1/auth/login", json={"email":"x@example.com","password":"wrong"},
                    headers={"X-CSRF-Token": csrf})
    r2 = client.post("/api/v1/auth/login", json={"email":"x@example.com","password":"wrong"},
                     headers={"X-CSRF-Token": csrf})
    assert r2.status_code == 429

def test_csrf_required_after_login(client):
    r, csrf = _login(client, "prof@example.com", "profpass")
    assert r.status_code == 200
    r2 = client.post("/api/v1/auth/logout")
    assert r2.status_code == 400
    r3 = client.post("/api/v1/auth/logout", headers={"X-CSRF-Token": "forged"})
    assert r3.status_code == 400

def test_logout(client):
    r, csrf = _login(client, "prof@example.com", "profpass")
    assert r.status_code == 200
    r2 = client.post("/api/v1/auth/logout", headers={"X-CSRF-Token": csrf})
    assert r2.status_code == 200
    # после выхода: снова 401
    assert client.get("/api/v1/auth/me").status_code == 401
