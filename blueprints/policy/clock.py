# blueprints/policy/clock.py
from __future__ import annotations
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context, request

DEFAULT_TZ = "Asia/Seoul"


def tz() -> ZoneInfo:
    name = DEFAULT_TZ
    if has_app_context():
        name = current_app.config.get("SCHEDULE_TIMEZONE", DEFAULT_TZ)
    return ZoneInfo(name)


def localize(dt: datetime) -> datetime:
    """Aware → наивное локальное время студии; наивное считаем уже локальным."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(tz()).replace(tzinfo=None)


def now() -> datetime:
    return datetime.now(tz()).replace(tzinfo=None)


def request_now() -> datetime:
    """«Сейчас» для запроса: ?now=ISO (или поле now в JSON), если разрешено конфигом."""
    if current_app.config.get("ALLOW_CLOCK_OVERRIDE"):
        raw: Optional[str] = request.args.get("now")
        if raw is None and request.is_json:
            payload = request.get_json(silent=True) or {}
            raw = payload.get("now") if isinstance(payload, dict) else None
        if raw:
            try:
                return localize(datetime.fromisoformat(raw))
            except ValueError:
                current_app.logger.warning("bad clock override", extra={"event": "clock_override_invalid"})
    return now()
