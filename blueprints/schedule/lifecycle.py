# blueprints/schedule/lifecycle.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Schedule, ScheduleStatus as S
from blueprints.notifications.signals import emit, schedule_changed
from blueprints.policy import clock
from . import history
from .errors import PersistenceFailure, PolicyViolation, ValidationError
from .history import Actor

log = logging.getLogger(__name__)


class Action(str, Enum):
    REQUEST_APPROVAL = "request_approval"
    APPROVE = "approve"
    REJECT = "reject"
    CONFIRM = "confirm"
    REQUEST_MODIFICATION = "request_modification"
    APPROVE_MODIFICATION = "approve_modification"
    COMPLETE_MODIFICATION = "complete_modification"
    REQUEST_CANCELLATION = "request_cancellation"
    APPROVE_CANCELLATION = "approve_cancellation"
    REVOKE = "revoke"
    DELETE = "delete"


@dataclass(frozen=True)
class Rule:
    to: Optional[S]              # None → вернуть previous_status
    admin_only: bool = False
    needs_reason: bool = False
    deactivates: bool = False


_REQUEST_STATES = (S.APPROVAL_REQUESTED, S.MODIFICATION_REQUESTED, S.CANCELLATION_REQUESTED)

# (действие, из статуса) → правило; всё, чего нет в таблице, запрещено
TRANSITIONS: Dict[Tuple[Action, S], Rule] = {
    (Action.REQUEST_APPROVAL, S.PENDING): Rule(S.APPROVAL_REQUESTED),
    (Action.APPROVE, S.PENDING): Rule(S.APPROVED, admin_only=True),
    (Action.APPROVE, S.APPROVAL_REQUESTED): Rule(S.APPROVED, admin_only=True),
    (Action.REJECT, S.APPROVAL_REQUESTED): Rule(S.REJECTED, admin_only=True),
    (Action.CONFIRM, S.APPROVED): Rule(S.CONFIRMED, admin_only=True),
    (Action.REQUEST_MODIFICATION, S.APPROVED): Rule(S.MODIFICATION_REQUESTED, needs_reason=True),
    (Action.REQUEST_MODIFICATION, S.CONFIRMED): Rule(S.MODIFICATION_REQUESTED, needs_reason=True),
    (Action.APPROVE_MODIFICATION, S.MODIFICATION_REQUESTED): Rule(S.MODIFICATION_APPROVED, admin_only=True),
    (Action.COMPLETE_MODIFICATION, S.MODIFICATION_APPROVED): Rule(S.APPROVED),
    **{(Action.REQUEST_CANCELLATION, st): Rule(S.CANCELLATION_REQUESTED, needs_reason=True)
       for st in (S.PENDING, S.APPROVAL_REQUESTED, S.APPROVED, S.CONFIRMED)},
    (Action.APPROVE_CANCELLATION, S.CANCELLATION_REQUESTED): Rule(S.CANCELLED, admin_only=True, deactivates=True),
    **{(Action.REVOKE, st): Rule(None) for st in _REQUEST_STATES},
    (Action.DELETE, S.PENDING): Rule(S.DELETED, deactivates=True),
}

TERMINAL = frozenset({S.CANCELLED, S.DELETED, S.REJECTED})
# approved_by/approved_at: кто и когда принял решение администратора (включая отклонение)
APPROVAL_ACTIONS = (Action.APPROVE, Action.REJECT, Action.CONFIRM,
                    Action.APPROVE_MODIFICATION, Action.APPROVE_CANCELLATION)

CHANGE_TYPES = {
    Action.APPROVE: "approved",
    Action.APPROVE_CANCELLATION: "cancelled",
}


def allowed_actions(status: S) -> List[str]:
    return [a.value for (a, st) in TRANSITIONS if st == status]


def resolve(action: Action, schedule: Schedule, actor: Actor, reason: Optional[str]) -> Rule:
    rule = TRANSITIONS.get((action, schedule.approval_status))
    if rule is None:
        raise PolicyViolation(
            "INVALID_TRANSITION",
            f"Действие «{action.value}» недоступно в статусе «{schedule.approval_status.value}»",
            {"status": schedule.approval_status.value, "allowed": allowed_actions(schedule.approval_status)},
        )
    if rule.admin_only and not actor.is_admin:
        raise PolicyViolation("ADMIN_REQUIRED", "Действие доступно только администратору")
    if not actor.is_admin and schedule.requested_by_id is not None and schedule.requested_by_id != actor.id:
        raise PolicyViolation("NOT_OWNER", "Можно изменять только свои заявки")
    if rule.needs_reason and not (reason or "").strip():
        raise ValidationError("REASON_REQUIRED", "Укажите причину")
    return rule


def _apply(schedule: Schedule, action: Action, rule: Rule, actor: Actor,
           reason: Optional[str], now: datetime) -> None:
    current = schedule.approval_status
    if rule.to is None:
        target = schedule.previous_status or S.PENDING
        schedule.previous_status = None
    else:
        target = rule.to
        if target in _REQUEST_STATES:
            schedule.previous_status = current
        elif current in _REQUEST_STATES:
            schedule.previous_status = None

    schedule.approval_status = target
    if action == Action.REQUEST_MODIFICATION:
        schedule.modification_reason = reason.strip()
    elif action == Action.REQUEST_CANCELLATION:
        schedule.cancellation_reason = reason.strip()
    if action in APPROVAL_ACTIONS:
        schedule.approved_by_id = actor.id
        schedule.approved_at = now
    if rule.deactivates:
        schedule.is_active = False
        if target == S.DELETED:
            schedule.deletion_reason = "deleted"


def _group_members(schedule: Schedule) -> List[Schedule]:
    """Действие над частью разделённой съёмки применяется ко всей группе."""
    if not (schedule.is_split_schedule and schedule.schedule_group_id):
        return [schedule]
    members = (Schedule.query
               .filter(Schedule.schedule_group_id == schedule.schedule_group_id,
                       Schedule.is_split_schedule.is_(True),
                       Schedule.is_active.is_(True))
               .order_by(Schedule.start_time.asc())
               .all())
    return [m for m in members if m.approval_status == schedule.approval_status] or [schedule]


def transition(schedule_id: int, action: Action | str, actor: Actor,
               reason: Optional[str] = None, now: Optional[datetime] = None) -> List[Schedule]:
    """Выполнить переход статуса. Возвращает все затронутые строки (группа частей: целиком)."""
    try:
        action = Action(action)
    except ValueError:
        raise ValidationError("UNKNOWN_ACTION", f"Неизвестное действие: {action}")
    now = now or clock.now()

    schedule = db.session.get(Schedule, schedule_id)
    if schedule is None:
        raise ValidationError("SCHEDULE_NOT_FOUND", "Расписание не найдено")
    if schedule.approval_status in TERMINAL:
        raise PolicyViolation("INVALID_TRANSITION", "Заявка уже закрыта",
                              {"status": schedule.approval_status.value, "allowed": []})
    if not schedule.is_active:
        # родитель разделённой съёмки или объединённая часть
        raise PolicyViolation("INVALID_TRANSITION", "Расписание неактивно",
                              {"status": schedule.approval_status.value, "allowed": []})
    rule = resolve(action, schedule, actor, reason)

    members = _group_members(schedule)
    change_type = CHANGE_TYPES.get(action, "status_changed")
    try:
        for m in members:
            old = history.snapshot(m)
            _apply(m, action, rule, actor, reason, now)
            history.record(m.id, change_type, actor, old=old, new=history.snapshot(m),
                           reason=reason, source=action.value)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("transition failed", extra={"event": "transition_failed"})
        raise PersistenceFailure("TRANSITION_FAILED", "Не удалось сохранить изменение статуса") from e

    log.info("schedule %s: %s -> %s", schedule_id, action.value, members[0].approval_status.value,
             extra={"event": "schedule_transition"})
    emit(schedule_changed, action.value, schedule=history.snapshot(members[0]),
         actor={"id": actor.id, "name": actor.name}, reason=reason)
    return members
