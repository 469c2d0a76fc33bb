# blueprints/schedule/conflicts.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field, asdict
from datetime import date, time
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import Schedule, ScheduleStatus, ShootingType, Studio, StudioShootingType
from .errors import ConflictError, PersistenceFailure, ValidationError
from .time_utils import (
    WORK_START, WORK_END, STEP, minutes_to_time, ranges_overlap, time_to_minutes,
)

log = logging.getLogger(__name__)

# эти статусы студию не занимают
FREE_STATUSES = (ScheduleStatus.CANCELLED, ScheduleStatus.REJECTED, ScheduleStatus.DELETED)
MAX_SUGGESTIONS = 3


@dataclass(frozen=True)
class ConflictQuery:
    shoot_date: date
    start: time
    end: time
    shooting_type: str
    exclude_schedule_id: Optional[int] = None
    exclude_group_id: Optional[str] = None
    parent_schedule_id: Optional[int] = None


@dataclass
class StudioOption:
    studio_id: int
    name: str
    is_primary: bool


@dataclass
class ConflictResult:
    ok: bool
    reason: Optional[str] = None                  # NO_COMPATIBLE_STUDIO | ALL_STUDIOS_BUSY
    recommended: Optional[StudioOption] = None
    alternatives: List[StudioOption] = field(default_factory=list)
    busy: List[dict] = field(default_factory=list)
    suggestions: List[dict] = field(default_factory=list)

    @property
    def recommended_studio_id(self) -> Optional[int]:
        return self.recommended.studio_id if self.recommended else None

    def to_dict(self) -> dict:
        return asdict(self)


def compatible_studios(shooting_type: str) -> List[StudioOption]:
    """Студии, поддерживающие тип съёмки, в порядке листинга (sort_order, id)."""
    rows = (db.session.query(StudioShootingType, Studio)
            .join(Studio, Studio.id == StudioShootingType.studio_id)
            .join(ShootingType, ShootingType.id == StudioShootingType.shooting_type_id)
            .filter(ShootingType.name == shooting_type,
                    ShootingType.is_active.is_(True),
                    Studio.is_active.is_(True))
            .order_by(Studio.sort_order.asc(), Studio.id.asc())
            .all())
    return [StudioOption(studio_id=st.id, name=st.name, is_primary=bool(m.is_primary)) for m, st in rows]


def _bookings(q: ConflictQuery, studio_ids: List[int]) -> List[Schedule]:
    rows = (Schedule.query
            .filter(Schedule.shoot_date == q.shoot_date,
                    Schedule.studio_id.in_(studio_ids),
                    Schedule.is_active.is_(True),
                    Schedule.approval_status.notin_(FREE_STATUSES))
            .all())
    out = []
    for s in rows:
        if q.exclude_schedule_id is not None and s.id == q.exclude_schedule_id:
            continue
        if q.exclude_group_id and s.schedule_group_id == q.exclude_group_id:
            continue
        # части одного разделённого расписания друг другу не мешают
        if q.parent_schedule_id is not None and s.parent_schedule_id == q.parent_schedule_id:
            continue
        out.append(s)
    return out


def suggest_slots(bookings: Iterable[Schedule], duration: int,
                  limit: int = MAX_SUGGESTIONS) -> List[dict]:
    """Первые свободные окна 09:00–22:00 с шагом 30 минут, без пересечений с любой бронью."""
    spans = [(time_to_minutes(b.start_time), time_to_minutes(b.end_time)) for b in bookings]
    out: List[dict] = []
    t = WORK_START
    while t <= WORK_END - duration and len(out) < limit:
        if not any(ranges_overlap(t, t + duration, s, e) for s, e in spans):
            out.append({"start": minutes_to_time(t), "end": minutes_to_time(t + duration)})
        t += STEP
    return out


def check_availability(q: ConflictQuery) -> ConflictResult:
    start, end = time_to_minutes(q.start), time_to_minutes(q.end)
    if start >= end:
        raise ValidationError("INVALID_TIME_RANGE", "Время окончания должно быть позже начала")
    try:
        studios = compatible_studios(q.shooting_type)
        if not studios:
            return ConflictResult(ok=False, reason="NO_COMPATIBLE_STUDIO")
        bookings = _bookings(q, [s.studio_id for s in studios])
    except SQLAlchemyError as e:
        # при ошибке чтения «свободно» не отвечаем
        log.exception("conflict check failed", extra={"event": "conflict_check_failed"})
        raise PersistenceFailure("CONFLICT_CHECK_FAILED", "Не удалось проверить занятость студий") from e

    busy_ids: Dict[int, List[dict]] = {}
    for b in bookings:
        if ranges_overlap(start, end, time_to_minutes(b.start_time), time_to_minutes(b.end_time)):
            busy_ids.setdefault(b.studio_id, []).append({
                "schedule_id": b.id,
                "studio_id": b.studio_id,
                "start": minutes_to_time(time_to_minutes(b.start_time)),
                "end": minutes_to_time(time_to_minutes(b.end_time)),
                "professor_name": b.professor_name,
            })
    busy = [item for items in busy_ids.values() for item in items]
    free = [s for s in studios if s.studio_id not in busy_ids]

    if not free:
        return ConflictResult(
            ok=False, reason="ALL_STUDIOS_BUSY", busy=busy,
            suggestions=suggest_slots(bookings, end - start),
        )

    recommended = next((s for s in free if s.is_primary), free[0])
    alternatives = [s for s in free if s.studio_id != recommended.studio_id]
    return ConflictResult(ok=True, recommended=recommended, alternatives=alternatives, busy=busy)


def require_available(q: ConflictQuery, studio_id: Optional[int] = None) -> int:
    """Как check_availability, но бросает ConflictError. Возвращает id студии для записи."""
    res = check_availability(q)
    if not res.ok:
        if res.reason == "NO_COMPATIBLE_STUDIO":
            raise ConflictError("NO_COMPATIBLE_STUDIO",
                                f"Нет студий для типа съёмки «{q.shooting_type}»")
        raise ConflictError("ALL_STUDIOS_BUSY", "Все подходящие студии заняты в это время",
                            details={"busy": res.busy}, suggestions=res.suggestions)
    if studio_id is None:
        return res.recommended_studio_id
    free_ids = [res.recommended_studio_id] + [a.studio_id for a in res.alternatives]
    if studio_id not in free_ids:
        raise ConflictError("STUDIO_BUSY", "Выбранная студия занята или не подходит",
                            details={"studio_id": studio_id, "free": free_ids})
    return studio_id


def find_available_studio(shooting_type: str, shoot_date: date, start: time, end: time) -> Optional[int]:
    res = check_availability(ConflictQuery(shoot_date=shoot_date, start=start, end=end,
                                           shooting_type=shooting_type))
    return res.recommended_studio_id


def find_conflicting_pairs(schedules: Iterable[Schedule]) -> List[Tuple[int, int]]:
    """Пары пересекающихся броней в одной студии в один день (для админки)."""
    by_key: Dict[tuple, List[Schedule]] = {}
    for s in schedules:
        if not s.is_active or s.approval_status in FREE_STATUSES or s.studio_id is None:
            continue
        by_key.setdefault((s.shoot_date, s.studio_id), []).append(s)

    pairs: List[Tuple[int, int]] = []
    for items in by_key.values():
        items.sort(key=lambda x: (x.start_time, x.id))
        for i, a in enumerate(items):
            for b in items[i + 1:]:
                if a.parent_schedule_id is not None and a.parent_schedule_id == b.parent_schedule_id:
                    continue
                if ranges_overlap(time_to_minutes(a.start_time), time_to_minutes(a.end_time),
                                  time_to_minutes(b.start_time), time_to_minutes(b.end_time)):
                    pairs.append((a.id, b.id))
    return pairs
