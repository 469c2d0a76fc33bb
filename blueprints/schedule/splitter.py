# blueprints/schedule/splitter.py
"""
Разделение съёмки на N смежных частей и обратное объединение.

Оригинал не удаляется: он деактивируется (is_active=False, is_split=True) и
становится родителем. Части получают общий schedule_group_id и ссылку
parent_schedule_id. Деактивация и вставка частей идут одной транзакцией;
если вставка всё же упала, оригинал восстанавливается отдельным шагом.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from itertools import groupby
from typing import Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Schedule, ScheduleStatus
from blueprints.notifications.signals import emit, schedule_changed, schedule_split
from blueprints.policy import clock
from . import history
from .conflicts import ConflictQuery, require_available
from .errors import PersistenceFailure, PolicyViolation, ValidationError
from .history import Actor
from .lifecycle import TERMINAL
from .time_utils import TimeLike, as_time, minutes_to_time, time_to_minutes

log = logging.getLogger(__name__)

DEFAULT_SPLIT_REASON = "Разделено администратором"

# поля, которые части наследуют от оригинала
COPIED_FIELDS = (
    "shoot_date", "professor_name", "course_name", "course_code", "shooting_type",
    "studio_id", "notes", "requested_by_id",
)


@dataclass
class SplitResult:
    original_id: int
    group_id: str
    children: List[Schedule]


def compute_segments(start: TimeLike, end: TimeLike, points: Iterable[TimeLike]) -> List[Tuple[int, int]]:
    """Точки строго внутри (start, end), без повторов, по возрастанию → смежные отрезки."""
    s, e = time_to_minutes(start), time_to_minutes(end)
    inner = sorted({m for m in (time_to_minutes(p) for p in points) if s < m < e})
    bounds = [s, *inner, e]
    return list(zip(bounds[:-1], bounds[1:]))


def _deactivate_original(original: Schedule, group_id: str, reason: str, now: datetime) -> None:
    original.is_active = False
    original.is_split = True
    original.schedule_group_id = group_id
    original.split_reason = reason
    original.split_at = now
    original.deletion_reason = "split_converted"


def _break_owner(original: Schedule, segments: Sequence[Tuple[int, int]]) -> Optional[int]:
    """Индекс части, которой достаётся перерыв: с наибольшим пересечением."""
    if not (original.break_enabled and original.break_start and original.break_end):
        return None
    bs, be = time_to_minutes(original.break_start), time_to_minutes(original.break_end)
    overlaps = [min(be, b) - max(bs, a) for a, b in segments]
    best = max(range(len(segments)), key=lambda i: overlaps[i])
    return best if overlaps[best] > 0 else None


def _insert_children(original: Schedule, segments: Sequence[Tuple[int, int]], group_id: str) -> List[Schedule]:
    children = []
    owner = _break_owner(original, segments)
    for order, (seg_start, seg_end) in enumerate(segments, start=1):
        child = Schedule(**{f: getattr(original, f) for f in COPIED_FIELDS})
        child.start_time = as_time(seg_start)
        child.end_time = as_time(seg_end)
        if owner == order - 1:
            # перерыв обрезается по границам своей части
            bs = max(time_to_minutes(original.break_start), seg_start)
            be = min(time_to_minutes(original.break_end), seg_end)
            child.break_enabled = True
            child.break_start = as_time(bs)
            child.break_end = as_time(be)
            child.break_duration_minutes = be - bs
        child.parent_schedule_id = original.id
        child.schedule_group_id = group_id
        child.is_split_schedule = True
        child.segment_order = order
        # разделение делает админ, поэтому части сразу одобрены
        child.approval_status = ScheduleStatus.APPROVED
        child.approved_by_id = original.approved_by_id
        child.approved_at = original.approved_at
        child.is_active = True
        db.session.add(child)
        children.append(child)
    return children


def restore_original(schedule_id: int, actor: Optional[Actor] = None) -> bool:
    """Вернуть оригинал в активное состояние. Повторный вызов ничего не меняет."""
    original = db.session.get(Schedule, schedule_id)
    if original is None:
        return False
    changed = (not original.is_active or original.is_split
               or original.schedule_group_id is not None or original.deletion_reason is not None)
    if not changed:
        return False
    old = history.snapshot(original)
    original.is_active = True
    original.is_split = False
    original.schedule_group_id = None
    original.deletion_reason = None
    original.split_at = None
    history.record(original.id, "split_rollback", actor or Actor(name="system", role="SYSTEM"),
                   old=old, new=history.snapshot(original), source="splitter")
    db.session.commit()
    log.warning("split rolled back", extra={"event": "split_rollback"})
    return True


def split_schedule(schedule_id: int, split_points: Iterable[TimeLike], reason: Optional[str] = None,
                   actor: Optional[Actor] = None, now: Optional[datetime] = None) -> SplitResult:
    actor = actor or Actor(name="system", role="SYSTEM")
    original = db.session.get(Schedule, schedule_id)
    if original is None:
        raise ValidationError("SCHEDULE_NOT_FOUND", "Расписание не найдено")
    if original.is_split or original.parent_schedule_id is not None:
        raise ValidationError("ALREADY_SPLIT", "Расписание уже разделено")
    if not original.is_active or original.approval_status in TERMINAL:
        raise ValidationError("SCHEDULE_INACTIVE", "Неактивное расписание делить нельзя",
                              {"status": original.approval_status.value})

    segments = compute_segments(original.start_time, original.end_time, split_points)
    if len(segments) < 2:
        raise ValidationError(
            "NO_VALID_SEGMENTS", "Точки разделения должны лежать внутри интервала съёмки",
            {"start": minutes_to_time(segments[0][0]), "end": minutes_to_time(segments[0][1])},
        )

    reason = (reason or "").strip() or DEFAULT_SPLIT_REASON
    group_id = uuid4().hex
    old = history.snapshot(original)
    original_id = original.id

    try:
        _deactivate_original(original, group_id, reason, now or clock.now())
        db.session.flush()
        children = _insert_children(original, segments, group_id)
        db.session.flush()
        history.record(
            original_id, "split", actor, old=old,
            new={
                "group_id": group_id,
                "segments": [{"id": c.id, "start_time": minutes_to_time(a), "end_time": minutes_to_time(b)}
                             for c, (a, b) in zip(children, segments)],
            },
            reason=reason, source="splitter",
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("split failed", extra={"event": "split_failed"})
        try:
            restore_original(original_id, actor)
        except SQLAlchemyError:
            db.session.rollback()
            log.exception("split restore failed", extra={"event": "split_restore_failed"})
        raise PersistenceFailure("SPLIT_FAILED", "Не удалось разделить расписание") from e

    log.info("schedule split", extra={"event": "schedule_split"})
    emit(schedule_split, "split",
         original=old,
         segments=[history.snapshot(c) for c in children],
         actor={"id": actor.id, "name": actor.name}, reason=reason)
    return SplitResult(original_id=original_id, group_id=group_id, children=children)


def merge_split(parent_id: int, actor: Optional[Actor] = None, reason: Optional[str] = None) -> Schedule:
    """
    Отменить разделение: части деактивируются, родитель возвращается со статусом частей.
    Закрытую группу (отменена, отклонена, удалена) объединить нельзя; интервал
    родителя заново проверяется на занятость.
    """
    actor = actor or Actor(name="system", role="SYSTEM")
    parent = db.session.get(Schedule, parent_id)
    if parent is None:
        raise ValidationError("SCHEDULE_NOT_FOUND", "Расписание не найдено")
    if not parent.is_split:
        raise ValidationError("NOT_SPLIT", "Расписание не разделено")

    children = (Schedule.query
                .filter(Schedule.parent_schedule_id == parent.id)
                .order_by(Schedule.start_time.asc())
                .all())
    closed = [c.id for c in children if not c.is_active or c.approval_status in TERMINAL]
    statuses = {c.approval_status for c in children}
    if not children or closed or len(statuses) != 1:
        raise PolicyViolation("GROUP_CLOSED", "Части уже закрыты или в разных статусах, объединение невозможно",
                              {"closed": closed, "statuses": sorted(s.value for s in statuses)})

    studio_id = require_available(ConflictQuery(
        shoot_date=parent.shoot_date, start=parent.start_time, end=parent.end_time,
        shooting_type=parent.shooting_type, exclude_schedule_id=parent.id,
        exclude_group_id=parent.schedule_group_id,
    ), parent.studio_id)

    old = history.snapshot(parent)
    try:
        for c in children:
            c.is_active = False
            c.deletion_reason = "merged"
        parent.approval_status = statuses.pop()
        parent.studio_id = studio_id
        parent.is_active = True
        parent.is_split = False
        parent.schedule_group_id = None
        parent.deletion_reason = None
        history.record(parent.id, "merged", actor, old=old,
                       new={**history.snapshot(parent), "merged_children": [c.id for c in children]},
                       reason=reason, source="splitter")
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("merge failed", extra={"event": "merge_failed"})
        raise PersistenceFailure("MERGE_FAILED", "Не удалось объединить расписание") from e

    emit(schedule_changed, "merge", schedule=history.snapshot(parent),
         actor={"id": actor.id, "name": actor.name}, reason=reason)
    return parent


# ---------- отображение ----------
@dataclass
class DisplayItem:
    """Строка списка: обычное расписание или объединённая группа частей."""
    schedule: Schedule
    start_time: str
    end_time: str
    group_id: Optional[str] = None
    members: Optional[List[int]] = None

    @property
    def is_group(self) -> bool:
        return bool(self.members) and len(self.members) > 1


def group_split_schedules(rows: Iterable[Schedule]) -> List[DisplayItem]:
    """Части с общим schedule_group_id сворачиваются в одну строку [min start, max end]."""
    plain: List[DisplayItem] = []
    grouped: List[Schedule] = []
    for s in rows:
        if s.is_split_schedule and s.schedule_group_id:
            grouped.append(s)
        else:
            plain.append(DisplayItem(s, s.start_time.strftime("%H:%M"), s.end_time.strftime("%H:%M")))

    grouped.sort(key=lambda x: (x.schedule_group_id, x.start_time))
    for gid, members_iter in groupby(grouped, key=lambda x: x.schedule_group_id):
        members = list(members_iter)
        if len(members) == 1:
            m = members[0]
            plain.append(DisplayItem(m, m.start_time.strftime("%H:%M"), m.end_time.strftime("%H:%M")))
            continue
        first = min(members, key=lambda x: x.start_time)
        last_end = max(m.end_time for m in members)
        plain.append(DisplayItem(
            schedule=first,
            start_time=first.start_time.strftime("%H:%M"),
            end_time=last_end.strftime("%H:%M"),
            group_id=gid,
            members=[m.id for m in sorted(members, key=lambda x: x.start_time)],
        ))

    plain.sort(key=lambda it: (it.schedule.shoot_date, it.start_time, it.schedule.id))
    return plain
