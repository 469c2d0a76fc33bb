# blueprints/schedule/services.py
from __future__ import annotations
import logging
from datetime import date, datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Schedule, ScheduleStatus, ShootingType
from blueprints.notifications.signals import emit, schedule_changed
from blueprints.policy import clock, services as policy
from . import history
from .conflicts import ConflictQuery, require_available
from .errors import ConflictError, PersistenceFailure, PolicyViolation, ValidationError
from .history import Actor
from .lifecycle import allowed_actions
from .schemas import ScheduleIn, ScheduleUpdate
from .splitter import DisplayItem, group_split_schedules
from .time_utils import BreakTime, as_time, split_at_break, time_to_minutes, validate_schedule_times

log = logging.getLogger(__name__)

EDITABLE_FIELDS = ("shoot_date", "start_time", "end_time", "shooting_type",
                   "course_name", "course_code", "studio_id", "notes")


def _fmt(t) -> Optional[str]:
    return t.strftime("%H:%M") if t else None


def serialize(s: Schedule) -> dict:
    return {
        "id": s.id,
        "shoot_date": s.shoot_date.isoformat(),
        "start_time": _fmt(s.start_time),
        "end_time": _fmt(s.end_time),
        "professor_name": s.professor_name,
        "course_name": s.course_name,
        "course_code": s.course_code,
        "shooting_type": s.shooting_type,
        "studio_id": s.studio_id,
        "studio": s.studio.name if s.studio else None,
        "approval_status": s.approval_status.value,
        "previous_status": s.previous_status.value if s.previous_status else None,
        "is_active": s.is_active,
        "notes": s.notes,
        "break": ({"start": _fmt(s.break_start), "end": _fmt(s.break_end),
                   "duration_minutes": s.break_duration_minutes} if s.break_enabled else None),
        "schedule_group_id": s.schedule_group_id,
        "is_split": s.is_split,
        "is_split_schedule": s.is_split_schedule,
        "parent_schedule_id": s.parent_schedule_id,
        "segment_order": s.segment_order,
        "modification_reason": s.modification_reason,
        "cancellation_reason": s.cancellation_reason,
        "approved_by_id": s.approved_by_id,
        "approved_at": s.approved_at.isoformat(timespec="seconds") if s.approved_at else None,
    }


def serialize_display(item: DisplayItem) -> dict:
    out = serialize(item.schedule)
    out["start_time"] = item.start_time
    out["end_time"] = item.end_time
    if item.is_group:
        out["group"] = {"id": item.group_id, "members": item.members}
    return out


def _actor_dict(actor: Actor) -> dict:
    return {"id": actor.id, "name": actor.name}


def _get_schedule(schedule_id: int) -> Schedule:
    s = db.session.get(Schedule, schedule_id)
    if s is None:
        raise ValidationError("SCHEDULE_NOT_FOUND", "Расписание не найдено")
    return s


def _ensure_shooting_type(name: str) -> None:
    if not ShootingType.query.filter_by(name=name, is_active=True).first():
        raise ValidationError("SHOOTING_TYPE_NOT_FOUND", f"Тип съёмки «{name}» не найден")


# ---------- чтение ----------
def list_schedules(date_from: Optional[date] = None, date_to: Optional[date] = None,
                   actor: Optional[Actor] = None) -> List[dict]:
    q = Schedule.query.filter(Schedule.is_active.is_(True))
    if date_from:
        q = q.filter(Schedule.shoot_date >= date_from)
    if date_to:
        q = q.filter(Schedule.shoot_date <= date_to)
    if actor is not None and not actor.is_admin:
        q = q.filter(Schedule.requested_by_id == actor.id)
    rows = q.order_by(Schedule.shoot_date.asc(), Schedule.start_time.asc()).all()
    return [serialize_display(it) for it in group_split_schedules(rows)]


def schedule_details(schedule_id: int, now: Optional[datetime] = None,
                     contact_info: Optional[str] = None) -> dict:
    s = _get_schedule(schedule_id)
    now = now or clock.now()
    out = serialize(s)
    out["policy"] = {
        "can_edit": s.is_active and policy.can_edit_schedule(s.approval_status.value, s.shoot_date, now),
        "edit": policy.schedule_edit_policy(s.shoot_date, now, contact_info).to_dict(),
        "cancel": policy.cancel_policy(s.shoot_date, now, contact_info).to_dict(),
        "allowed_actions": allowed_actions(s.approval_status) if s.is_active else [],
    }
    return out


# ---------- создание ----------
def create_schedule(data: ScheduleIn, actor: Actor, now: Optional[datetime] = None) -> List[Schedule]:
    """Новая заявка. С split_on_break и перерывом внутри создаётся группа из двух записей."""
    now = now or clock.now()
    if not actor.is_admin and not policy.is_date_in_registration_range(data.shoot_date, now):
        start, end = policy.registration_window(now)
        raise PolicyViolation(
            "OUTSIDE_REGISTRATION_WINDOW", "Дата вне окна регистрации",
            {"start": start.isoformat(), "end": end.isoformat()},
        )
    brk = data.break_time
    validate_schedule_times(data.start_time, data.end_time,
                            brk.start if brk else None, brk.end if brk else None)
    _ensure_shooting_type(data.shooting_type)

    parts = [(time_to_minutes(data.start_time), time_to_minutes(data.end_time))]
    if brk and data.split_on_break:
        split = split_at_break(data.start_time, data.end_time,
                               BreakTime(time_to_minutes(brk.start), time_to_minutes(brk.end)))
        if split is None:
            raise ValidationError("INVALID_BREAK", "Перерыв должен лежать строго внутри съёмки")
        parts = split

    # сначала проверяем все части, потом пишем
    studio_ids = []
    for a, b in parts:
        q = ConflictQuery(shoot_date=data.shoot_date, start=as_time(a), end=as_time(b),
                          shooting_type=data.shooting_type)
        studio_ids.append(require_available(q, data.studio_id))

    group_id = uuid4().hex if len(parts) > 1 else None
    rows: List[Schedule] = []
    try:
        for order, ((a, b), studio_id) in enumerate(zip(parts, studio_ids), start=1):
            s = Schedule(
                shoot_date=data.shoot_date,
                start_time=as_time(a),
                end_time=as_time(b),
                professor_name=data.professor_name,
                course_name=data.course_name,
                course_code=data.course_code,
                shooting_type=data.shooting_type,
                studio_id=studio_id,
                notes=data.notes,
                approval_status=ScheduleStatus.PENDING,
                requested_by_id=actor.id,
            )
            if brk and not group_id:
                s.break_enabled = True
                s.break_start = brk.start
                s.break_end = brk.end
                s.break_duration_minutes = time_to_minutes(brk.end) - time_to_minutes(brk.start)
            if group_id:
                s.schedule_group_id = group_id
                s.is_split_schedule = True
                s.segment_order = order
            db.session.add(s)
            rows.append(s)
        db.session.flush()
        for s in rows:
            history.record(s.id, "created", actor, new=history.snapshot(s), source="registration")
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("create failed", extra={"event": "schedule_create_failed"})
        raise PersistenceFailure("CREATE_FAILED", "Не удалось сохранить заявку") from e

    log.info("schedule created", extra={"event": "schedule_created"})
    emit(schedule_changed, "created", schedule=history.snapshot(rows[0]), actor=_actor_dict(actor))
    return rows


# ---------- прямая правка ----------
def _check_direct_edit(s: Schedule, new_date: date, actor: Actor, now: datetime,
                       contact_info: Optional[str]) -> None:
    if actor.is_admin:
        return
    if s.requested_by_id is not None and s.requested_by_id != actor.id:
        raise PolicyViolation("NOT_OWNER", "Можно изменять только свои заявки")
    # после разрешения на изменение правка открыта без оглядки на календарь
    if s.approval_status == ScheduleStatus.MODIFICATION_APPROVED:
        return
    for d in {s.shoot_date, new_date}:
        if policy.can_edit_schedule(s.approval_status.value, d, now):
            continue
        if s.approval_status.value in policy.APPROVED_STATUSES:
            raise PolicyViolation("MODIFICATION_REQUEST_REQUIRED",
                                  "Одобренную заявку можно изменить только через запрос на изменение")
        p = policy.schedule_edit_policy(d, now, contact_info)
        if p.needs_contact:
            raise PolicyViolation("NEEDS_CONTACT", p.message, {"contact_info": p.contact_info,
                                                                "days_left": p.days_left})
        raise PolicyViolation("TOO_LATE", p.message, {"days_left": p.days_left})


def update_schedule(schedule_id: int, data: ScheduleUpdate, actor: Actor,
                    now: Optional[datetime] = None, contact_info: Optional[str] = None) -> Schedule:
    now = now or clock.now()
    s = _get_schedule(schedule_id)
    if not s.is_active:
        raise ValidationError("SCHEDULE_INACTIVE", "Расписание неактивно")
    changes = data.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if k in EDITABLE_FIELDS}
    if not changes:
        return s

    new_date = changes.get("shoot_date", s.shoot_date)
    _check_direct_edit(s, new_date, actor, now, contact_info)

    new_start = changes.get("start_time", s.start_time)
    new_end = changes.get("end_time", s.end_time)
    new_type = changes.get("shooting_type", s.shooting_type)
    validate_schedule_times(new_start, new_end,
                            s.break_start if s.break_enabled else None,
                            s.break_end if s.break_enabled else None)
    if "shooting_type" in changes:
        _ensure_shooting_type(new_type)

    q = ConflictQuery(
        shoot_date=new_date, start=new_start, end=new_end, shooting_type=new_type,
        exclude_schedule_id=s.id, exclude_group_id=s.schedule_group_id,
        parent_schedule_id=s.parent_schedule_id,
    )
    wanted = changes.get("studio_id")
    try:
        studio_id = require_available(q, wanted or s.studio_id)
    except ConflictError as e:
        # своя студия занята: подбираем другую, если пользователь не выбирал явно
        if wanted is not None or e.code != "STUDIO_BUSY":
            raise
        studio_id = require_available(q)
    changes["studio_id"] = studio_id

    old = history.snapshot(s)
    try:
        for k, v in changes.items():
            setattr(s, k, v)
        history.record(s.id, "updated", actor, old=old, new=history.snapshot(s), source="direct_edit")
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("update failed", extra={"event": "schedule_update_failed"})
        raise PersistenceFailure("UPDATE_FAILED", "Не удалось сохранить изменения") from e

    emit(schedule_changed, "updated", schedule=history.snapshot(s), actor=_actor_dict(actor))
    return s
