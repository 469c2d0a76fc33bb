# blueprints/schedule/errors.py
from __future__ import annotations
from typing import Any, Optional


class ScheduleError(Exception):
    """Базовая бизнес-ошибка. code: машинный код (UPPER_SNAKE), message: для человека."""
    status_code = 400

    def __init__(self, code: str, message: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message or code)
        self.code = code
        self.message = message or code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(ScheduleError):
    NOT_FOUND_CODES = ("SCHEDULE_NOT_FOUND", "STUDIO_NOT_FOUND", "SHOOTING_TYPE_NOT_FOUND")

    @property
    def status_code(self) -> int:  # type: ignore[override]
        return 404 if self.code in self.NOT_FOUND_CODES else 400


class PolicyViolation(ScheduleError):
    status_code = 403


class ConflictError(ScheduleError):
    status_code = 409

    def __init__(self, code: str, message: Optional[str] = None, details: Optional[dict] = None,
                 suggestions: Optional[list] = None):
        super().__init__(code, message, details)
        self.suggestions = suggestions or []

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        out["suggestions"] = self.suggestions
        return out


class PersistenceFailure(ScheduleError):
    status_code = 503
