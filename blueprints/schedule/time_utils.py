# blueprints/schedule/time_utils.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import time
from typing import List, Optional, Tuple, Union

from .errors import ValidationError

TimeLike = Union[str, time]

WORK_START = 9 * 60     # 09:00
WORK_END = 22 * 60      # 22:00
STEP = 30
DAY_MINUTES = 24 * 60

LUNCH = (12 * 60, 13 * 60)
DINNER = (18 * 60, 19 * 60)
LONG_SHOOT_MINUTES = 240


@dataclass(frozen=True)
class BreakTime:
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {
            "start": minutes_to_time(self.start),
            "end": minutes_to_time(self.end),
            "duration_minutes": self.duration,
        }


def time_to_minutes(value: TimeLike) -> int:
    """'HH:MM', 'HH:MM:SS' или datetime.time → минуты от полуночи. '24:00' допустимо."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        raise ValidationError("INVALID_TIME", f"Некорректное время: {value!r}")
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValidationError("INVALID_TIME", f"Некорректное время: {value!r}")
    h, m = int(parts[0]), int(parts[1])
    if not (0 <= m < 60) or not (0 <= h <= 24) or (h == 24 and m != 0):
        raise ValidationError("INVALID_TIME", f"Некорректное время: {value!r}")
    return h * 60 + m


def minutes_to_time(minutes: int) -> str:
    if not (0 <= minutes <= DAY_MINUTES):
        raise ValidationError("INVALID_TIME", f"Минуты вне суток: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def as_time(value: TimeLike | int) -> time:
    mins = value if isinstance(value, int) else time_to_minutes(value)
    if mins >= DAY_MINUTES:
        raise ValidationError("INVALID_TIME", "24:00 нельзя сохранить как время суток")
    return time(mins // 60, mins % 60)


def ranges_overlap(s1: int, e1: int, s2: int, e2: int) -> bool:
    # полуинтервалы [s, e): касание концами: не пересечение
    return s1 < e2 and s2 < e1


def time_options() -> List[str]:
    """Варианты начала/конца: 09:00 … 21:30 с шагом 30 минут."""
    return [minutes_to_time(m) for m in range(WORK_START, WORK_END, STEP)]


def break_time_options() -> List[str]:
    return time_options() + [minutes_to_time(WORK_END)]


def break_time_options_in_range(start: TimeLike, end: TimeLike) -> List[str]:
    s, e = time_to_minutes(start), time_to_minutes(end)
    return [opt for opt in break_time_options() if s < time_to_minutes(opt) < e]


def effective_work_minutes(start: TimeLike, end: TimeLike, brk: Optional[BreakTime] = None) -> int:
    s, e = time_to_minutes(start), time_to_minutes(end)
    total = e - s
    if brk is None:
        return total
    overlap = max(0, min(e, brk.end) - max(s, brk.start))
    return total - overlap


def check_break_time_conflict(start: TimeLike, end: TimeLike) -> Optional[Tuple[str, BreakTime]]:
    """Пересекается ли съёмка с обедом или ужином. Возвращает (тип, предлагаемый перерыв)."""
    s, e = time_to_minutes(start), time_to_minutes(end)
    for kind, (bs, be) in (("lunch", LUNCH), ("dinner", DINNER)):
        if ranges_overlap(s, e, bs, be):
            return kind, BreakTime(bs, be)
    return None


def recommend_break_time(start: TimeLike, end: TimeLike) -> Optional[BreakTime]:
    """Подсказка перерыва для длинных (от 4 часов) съёмок. Не правило, а совет для формы."""
    s, e = time_to_minutes(start), time_to_minutes(end)
    duration = e - s
    if duration < LONG_SHOOT_MINUTES:
        return None
    if s <= 13 * 60 and e >= 17 * 60:
        return BreakTime(*LUNCH)
    if s <= 19 * 60 and e >= 23 * 60:
        return BreakTime(*DINNER)
    middle = s + duration // 2
    return BreakTime(max(middle - 30, s + 60), min(middle + 30, e - 60))


def split_at_break(start: TimeLike, end: TimeLike, brk: BreakTime) -> Optional[List[Tuple[int, int]]]:
    """Две части вокруг перерыва или None, если перерыв не лежит строго внутри съёмки."""
    s, e = time_to_minutes(start), time_to_minutes(end)
    if not (s < brk.start and brk.end < e):
        return None
    return [(s, brk.start), (brk.end, e)]


def validate_schedule_times(start: TimeLike, end: TimeLike,
                            break_start: Optional[TimeLike] = None,
                            break_end: Optional[TimeLike] = None) -> None:
    s, e = time_to_minutes(start), time_to_minutes(end)
    if s >= e:
        raise ValidationError("INVALID_TIME_RANGE", "Время окончания должно быть позже начала",
                              {"start": minutes_to_time(s), "end": minutes_to_time(e)})
    if break_start is None and break_end is None:
        return
    if break_start is None or break_end is None:
        raise ValidationError("INVALID_BREAK", "Перерыв задан не полностью")
    bs, be = time_to_minutes(break_start), time_to_minutes(break_end)
    if not (s <= bs < be <= e):
        raise ValidationError("INVALID_BREAK", "Перерыв должен лежать внутри съёмки",
                              {"break_start": minutes_to_time(bs), "break_end": minutes_to_time(be)})
