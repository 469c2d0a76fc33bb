from __future__ import annotations
import json
import logging
import re
from http.cookies import SimpleCookie

from app import create_app
from blueprints.core.routes import JSONFormatter

VISITOR_COOKIE = "visitor_id"
MAX_AGE = 60 * 60 * 24 * 180  # 180 дней

def _get_cookie_from_headers(headers, name: str):
    raw = headers.get("Set-Cookie")
    if not raw:
        return None
    c = SimpleCookie()
    c.load(raw)
    morsel = c.get(name)
    return morsel

def test_health_ok():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/health")
        assert rv.status_code == 200
        data = rv.get_json()
        assert data["status"] == "ok"
        # Должны отдать visitor_id в JSON (созданный или существующий)
        assert "visitor_id" in data

def test_sets_visitor_id_cookie():
    app = create_app("test")
    with app.test_client() as c:
        rv = c.get("/health")
        assert rv.status_code == 200

        cookie = _get_cookie_from_headers(rv.headers, VISITOR_COOKIE)
        assert cookie is not None, "должен быть установлен visitor_id"
        assert re.fullmatch(r"[0-9a-f]{32}", cookie.value), "ожидаем uuid4 hex"
        # Max-Age должен быть 180 дней
        assert cookie["max-age"] == str(MAX_AGE)

        # Повторный запрос с тем же cookie: не должен переустанавливать новый
        rv2 = c.get("/health", headers={"Cookie": f"{VISITOR_COOKIE}={cookie.value}"})
        # либо заголовка Set-Cookie нет, либо он с тем же value
        cookie2 = _get_cookie_from_headers(rv2.headers, VISITOR_COOKIE)
        if cookie2:
            assert cookie2.value == cookie.value

def test_json_formatter_keeps_extra_keys():
    rec = logging.LogRecord("schedule", logging.INFO, __file__, 1, "split %s", ("ok",), None)
    rec.event = "schedule_split"
    payload = json.loads(JSONFormatter().format(rec))
    assert payload["msg"] == "split ok"
    assert payload["event"] == "schedule_split"
    assert payload["ts"].endswith("Z")

def test_policy_status_uses_clock_override():
    app = create_app("test")
    with app.test_client() as c:
        js = c.get("/api/v1/policy/status?now=2025-09-06T12:00:00").get_json()
        assert js["can_edit_online"] is False
        assert js["status"]["urgency"] == "danger"
        assert js["edit_deadline"].startswith("2025-09-04T23:59:59")

        js = c.get("/api/v1/policy/registration-window?now=2025-09-01T10:00:00").get_json()
        assert (js["start"], js["end"]) == ("2025-09-08", "2025-09-21")
        assert len(js["dates"]) == 14

        js = c.get("/api/v1/policy/schedule?date=2025-09-03&now=2025-09-01T10:00:00").get_json()
        assert js["edit"]["needs_contact"] is True
        assert js["edit"]["contact_info"] == app.config["CONTACT_INFO"]

def test_clock_override_ignored_in_prod():
    app = create_app("prod")
    with app.test_client() as c:
        js = c.get("/api/v1/policy/status?now=2001-01-01T10:00:00").get_json()
        assert not js["now"].startswith("2001")
