# blueprints/policy/services.py
"""
Политика регистрации и правки расписания.

Все функции чистые: принимают явное «сейчас» (now). now=None → clock.now().
Неделя начинается в понедельник 00:00; воскресенье относится к прошлой неделе.
Регистрация открыта на две следующие недели, онлайн-правка: до четверга 23:59:59.999
текущей недели, только в будни и с 09:00.
"""
from __future__ import annotations
import logging
import math
from dataclasses import dataclass, asdict
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple, Union

from . import clock

log = logging.getLogger(__name__)

DateLike = Union[date, datetime, str, None]

REGISTRATION_DAYS = 14
DIRECT_EDIT_MIN_DAYS = 4
EDIT_HOURS_FROM = 9
APPROVED_STATUSES = ("approved", "confirmed")
DEFAULT_CONTACT = "Студия: 02-0000-0000 (доб. 123), будни 09:00-18:00"


@dataclass(frozen=True)
class EditPolicy:
    can_direct_edit: bool
    needs_contact: bool
    days_left: Optional[int]
    urgency: str            # safe | contact | danger
    reason: str             # normal | needs_contact | past_or_today
    message: str
    contact_info: Optional[str] = None

    @property
    def can_request_edit(self) -> bool:
        return self.can_direct_edit

    def to_dict(self) -> dict:
        out = asdict(self)
        out["can_request_edit"] = self.can_request_edit
        return out


@dataclass(frozen=True)
class RemainingTime:
    days: int
    hours: int
    minutes: int
    total_minutes: int


@dataclass(frozen=True)
class StatusMessage:
    can_edit: bool
    urgency: str            # safe | warning | danger
    message: str
    remaining: Optional[RemainingTime] = None
    contact_info: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class WeekInfo:
    week_start: date
    week_end: date
    is_registration_week: bool

    def to_dict(self) -> dict:
        return {
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "label": _week_label(self.week_start, self.week_end),
            "is_registration_week": self.is_registration_week,
        }


def _resolve(now: Optional[datetime]) -> datetime:
    return clock.now() if now is None else clock.localize(now)


def _parse_date(value: DateLike) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def _week_label(start: date, end: date) -> str:
    return f"{start.day:02d}.{start.month:02d} (пн) – {end.day:02d}.{end.month:02d} (вс)"


# ---------- календарь ----------
def current_week_monday(now: Optional[datetime] = None) -> datetime:
    now = _resolve(now)
    # weekday(): пн=0 … вс=6, поэтому воскресенье уходит на 6 дней назад
    return datetime.combine(now.date() - timedelta(days=now.weekday()), time.min)


def next_week_monday(now: Optional[datetime] = None) -> datetime:
    return current_week_monday(now) + timedelta(days=7)


def registration_window(now: Optional[datetime] = None) -> Tuple[date, date]:
    """Включительный диапазон дат, доступных для новой заявки."""
    start = next_week_monday(now).date()
    return start, start + timedelta(days=REGISTRATION_DAYS - 1)


def registration_dates(now: Optional[datetime] = None) -> List[date]:
    start, _ = registration_window(now)
    return [start + timedelta(days=i) for i in range(REGISTRATION_DAYS)]


def is_date_in_registration_range(target: DateLike, now: Optional[datetime] = None) -> bool:
    d = _parse_date(target)
    if d is None:
        return False
    start, end = registration_window(now)
    return start <= d <= end


def current_week_info(now: Optional[datetime] = None) -> WeekInfo:
    now = _resolve(now)
    monday = current_week_monday(now).date()
    return WeekInfo(
        week_start=monday,
        week_end=monday + timedelta(days=6),
        is_registration_week=now.weekday() == 0,
    )


def edit_deadline(now: Optional[datetime] = None) -> datetime:
    thursday = current_week_monday(now) + timedelta(days=3)
    return thursday.replace(hour=23, minute=59, second=59, microsecond=999000)


def can_edit_online(now: Optional[datetime] = None) -> bool:
    now = _resolve(now)
    if now.weekday() >= 5:
        return False
    if now.hour < EDIT_HOURS_FROM:
        return False
    return now <= edit_deadline(now)


def remaining_edit_time(now: Optional[datetime] = None) -> RemainingTime:
    now = _resolve(now)
    left = edit_deadline(now) - now
    if left.total_seconds() <= 0:
        return RemainingTime(0, 0, 0, 0)
    total = int(left.total_seconds() // 60)
    return RemainingTime(
        days=total // (24 * 60),
        hours=(total % (24 * 60)) // 60,
        minutes=total % 60,
        total_minutes=total,
    )


# ---------- политика по конкретной дате ----------
def schedule_edit_policy(schedule_date: DateLike, now: Optional[datetime] = None,
                         contact_info: Optional[str] = None) -> EditPolicy:
    """
    days_left = ceil((полночь даты съёмки − now) / сутки):
      < 0  : прошлое, правка невозможна;
      >= 4 : онлайн-правка, если открыто окно can_edit_online;
      1..3 : только через студию (контакт);
      0    : день съёмки, правка невозможна.
    Нечитаемая дата не роняет вызов: решаем только по can_edit_online.
    """
    now = _resolve(now)
    contact = contact_info or DEFAULT_CONTACT
    d = _parse_date(schedule_date)
    if d is None:
        log.warning("edit policy: unparsable date %r", schedule_date)
        can = can_edit_online(now)
        return EditPolicy(
            can_direct_edit=can, needs_contact=False, days_left=None,
            urgency="safe", reason="normal",
            message="Дата съёмки не распознана: действует общее окно правки.",
        )

    diff = datetime.combine(d, time.min) - now
    days_left = math.ceil(diff.total_seconds() / 86400)

    if days_left < 0:
        return EditPolicy(False, False, days_left, "danger", "past_or_today",
                          "Прошедшую съёмку изменить нельзя.")
    if days_left >= DIRECT_EDIT_MIN_DAYS:
        can = can_edit_online(now)
        msg = (f"D-{days_left}: доступна онлайн-правка." if can
               else "Онлайн-правка доступна только в будни с 09:00 до четверга 23:59.")
        return EditPolicy(can, False, days_left, "safe", "normal", msg)
    if days_left >= 1:
        return EditPolicy(False, True, days_left, "contact", "needs_contact",
                          f"D-{days_left}: изменения только по согласованию со студией.",
                          contact_info=contact)
    return EditPolicy(False, False, days_left, "danger", "past_or_today",
                      "День съёмки: изменения невозможны.")


def cancel_policy(schedule_date: DateLike, now: Optional[datetime] = None,
                  contact_info: Optional[str] = None) -> EditPolicy:
    return schedule_edit_policy(schedule_date, now, contact_info)


def status_message(now: Optional[datetime] = None, contact_info: Optional[str] = None) -> StatusMessage:
    now = _resolve(now)
    if not can_edit_online(now):
        return StatusMessage(
            can_edit=False, urgency="danger",
            message="Онлайн-правка на этой неделе закрыта. Свяжитесь со студией.",
            contact_info=contact_info or DEFAULT_CONTACT,
        )
    rem = remaining_edit_time(now)
    if rem.days == 0 and rem.hours <= 12:
        urgency = "danger"
        msg = f"Правка скоро закроется: осталось {rem.hours} ч {rem.minutes} мин"
    elif rem.days == 0 or (rem.days == 1 and rem.hours <= 12):
        urgency = "warning"
        msg = f"До закрытия правки: {rem.days} д {rem.hours} ч"
    else:
        urgency = "safe"
        dl = edit_deadline(now)
        msg = f"Онлайн-правка открыта ({rem.days} д, до {dl.day:02d}.{dl.month:02d} (чт) 23:59)"
    return StatusMessage(can_edit=True, urgency=urgency, message=msg, remaining=rem)


def can_edit_schedule(status: str, shoot_date: DateLike, now: Optional[datetime] = None) -> bool:
    """Можно ли владельцу править заявку напрямую (без запроса на изменение)."""
    if status in APPROVED_STATUSES:
        return False
    if is_date_in_registration_range(shoot_date, now):
        return True
    return schedule_edit_policy(shoot_date, now).can_direct_edit
