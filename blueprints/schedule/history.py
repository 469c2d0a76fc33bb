# blueprints/schedule/history.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, List, Optional

from extensions import db
from models import Schedule, ScheduleHistory

TRACKED_FIELDS = (
    "shoot_date", "start_time", "end_time", "studio_id", "shooting_type",
    "professor_name", "course_name", "course_code", "approval_status",
    "is_active", "schedule_group_id", "parent_schedule_id", "notes",
)


@dataclass
class Actor:
    """Кто выполняет действие. Без пользователя: системное действие."""
    id: Optional[int] = None
    name: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ("ADMIN", "MANAGER")

    @classmethod
    def from_user(cls, user) -> "Actor":
        if user is None or not getattr(user, "is_authenticated", False):
            return cls(name="system", role="SYSTEM")
        return cls(id=user.id, name=user.name or user.email, role=user.role)


def _plain(value: Any) -> Any:
    if hasattr(value, "value"):           # Enum
        return value.value
    if hasattr(value, "isoformat"):       # date / time / datetime
        return value.isoformat()
    return value


def snapshot(schedule: Schedule, fields=TRACKED_FIELDS) -> dict:
    return {f: _plain(getattr(schedule, f)) for f in fields}


def record(schedule_id: int, change_type: str, actor: Actor,
           old: Optional[dict] = None, new: Optional[dict] = None,
           reason: Optional[str] = None, source: str = "api") -> ScheduleHistory:
    """Добавляет запись в текущую сессию; коммит: вместе с изменением."""
    entry = ScheduleHistory(
        schedule_id=schedule_id,
        change_type=change_type,
        actor_id=actor.id,
        actor_name=actor.name,
        actor_role=actor.role,
        source=source,
        reason=reason,
        old_values=old,
        new_values=new,
    )
    db.session.add(entry)
    return entry


def history_for(schedule_id: int) -> List[dict]:
    rows = (ScheduleHistory.query
            .filter_by(schedule_id=schedule_id)
            .order_by(ScheduleHistory.created_at.asc(), ScheduleHistory.id.asc())
            .all())
    return [{
        "id": h.id,
        "change_type": h.change_type,
        "actor": {"id": h.actor_id, "name": h.actor_name, "role": h.actor_role},
        "source": h.source,
        "reason": h.reason,
        "old": h.old_values,
        "new": h.new_values,
        "created_at": h.created_at.isoformat(timespec="seconds"),
    } for h in rows]
