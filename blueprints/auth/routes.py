# blueprints/auth/routes.py
from __future__ import annotations
import time
import secrets
from functools import wraps
from typing import Callable, Optional

from flask import Blueprint, request, jsonify, session, abort, current_app
from flask_login import login_user, logout_user, login_required, current_user
from werkzeug.security import check_password_hash

from extensions import db, login_manager
from models import User

api_bp = Blueprint("auth_api", __name__)

# ---- безопасные значения по умолчанию
DEFAULT_RL_MAX = 5
DEFAULT_RL_WIN = 300  # 5 минут
_login_attempts: dict[str, list[float]] = {}  # ключ: ip|email -> [timestamps]

ADMIN_ROLES = ("ADMIN", "MANAGER")


@login_manager.user_loader
def load_user(uid: str) -> Optional[User]:
    try:
        return db.session.get(User, int(uid))
    except ValueError:
        return None


# ---------- CSRF ----------
def issue_csrf() -> str:
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def verify_csrf() -> None:
    # Только для изменяющих методов
    if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
        return
    # логин и получение токена: без проверки
    if request.path in ("/api/v1/auth/login", "/api/v1/csrf"):
        return
    if not request.path.startswith("/api/"):
        return
    token = request.headers.get("X-CSRF-Token") or request.form.get("csrf_token")
    if not token or token != session.get("csrf_token"):
        abort(400, description="CSRF token missing or invalid")


@api_bp.before_app_request
def _csrf_middleware():
    verify_csrf()


# ---------- rate limit ----------
def _rl_key(email: str) -> str:
    ip = request.headers.get("X-Forwarded-For", request.remote_addr or "0.0.0.0").split(",")[0].strip()
    return f"{ip}|{(email or '').lower()}"


def _rl_check_and_hit(email: str) -> bool:
    now = time.time()
    win = current_app.config.get("AUTH_RL_WINDOW", DEFAULT_RL_WIN)
    mx = current_app.config.get("AUTH_RL_MAX", DEFAULT_RL_MAX)
    bucket = _login_attempts.setdefault(_rl_key(email), [])
    cutoff = now - win
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)
    if len(bucket) >= mx:
        return False
    bucket.append(now)
    return True


# ---------- декораторы ролей ----------
def admin_required(fn: Callable):
    @wraps(fn)
    @login_required
    def wrapper(*args, **kwargs):
        if getattr(current_user, "role", None) not in ADMIN_ROLES:
            abort(403)
        return fn(*args, **kwargs)
    return wrapper


# ---------- обработчики 401/403 ----------
@login_manager.unauthorized_handler
def _unauth():
    return jsonify({"ok": False, "errors": [{"code": "UNAUTHORIZED"}]}), 401


@api_bp.app_errorhandler(403)
def _forbidden(e):
    return jsonify({"ok": False, "errors": [{"code": "FORBIDDEN"}]}), 403


@api_bp.app_errorhandler(404)
def _not_found(e):
    return jsonify({"ok": False, "errors": [{"code": "NOT_FOUND"}]}), 404


# ---------- API ----------
@api_bp.get("/csrf")
def api_csrf():
    token = issue_csrf()
    resp = jsonify({"csrf": token})
    resp.set_cookie("csrf_token", token, samesite="Lax", httponly=False, path="/")
    return resp


@api_bp.post("/auth/login")
def api_login():
    payload = request.get_json(silent=True) or request.form or {}
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"error": "missing_credentials"}), 400

    if not _rl_check_and_hit(email):
        return jsonify({"error": "too_many_attempts"}), 429

    user: Optional[User] = User.query.filter_by(email=email).first()
    if not user or not user.password_hash or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "invalid_credentials"}), 401

    if not user.is_active:
        return jsonify({"error": "inactive"}), 403

    login_user(user, remember=True)
    issue_csrf()
    return jsonify({"ok": True, "user": {"id": user.id, "email": user.email, "role": user.role, "name": user.name}})


@api_bp.post("/auth/logout")
@login_required
def api_logout():
    logout_user()
    return jsonify({"ok": True})


@api_bp.get("/auth/me")
@login_required
def api_me():
    return jsonify({"ok": True, "user": {
        "id": current_user.id, "email": current_user.email,
        "role": current_user.role, "name": current_user.name,
    }})
