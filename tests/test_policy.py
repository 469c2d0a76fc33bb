from __future__ import annotations
from datetime import date, datetime, timedelta, timezone
import pytest

from blueprints.policy import services as policy

MON = datetime(2025, 9, 1, 10, 0)          # понедельник


def _every_hour(days: int = 21):
    start = datetime(2025, 8, 25, 0, 0)
    return [start + timedelta(hours=h) for h in range(days * 24)]


def test_week_monday_for_sunday_is_previous_monday():
    assert policy.current_week_monday(datetime(2025, 9, 7, 15, 0)) == datetime(2025, 9, 1)
    assert policy.current_week_monday(MON) == datetime(2025, 9, 1)
    assert policy.next_week_monday(MON) == datetime(2025, 9, 8)


def test_registration_window_always_starts_monday_and_spans_two_weeks():
    for now in _every_hour():
        start, end = policy.registration_window(now)
        assert start.weekday() == 0
        assert (end - start).days == 13
        monday = policy.current_week_monday(now)
        assert monday <= now < monday + timedelta(days=7)


def test_registration_dates_and_range():
    dates = policy.registration_dates(MON)
    assert dates[0] == date(2025, 9, 8) and dates[-1] == date(2025, 9, 21)
    assert len(dates) == 14
    assert policy.is_date_in_registration_range("2025-09-21", MON)
    assert not policy.is_date_in_registration_range(date(2025, 9, 7), MON)
    assert not policy.is_date_in_registration_range("garbage", MON)


def test_week_info():
    info = policy.current_week_info(MON)
    assert info.week_start == date(2025, 9, 1) and info.week_end == date(2025, 9, 7)
    assert info.is_registration_week is True
    assert policy.current_week_info(datetime(2025, 9, 2, 10)).is_registration_week is False


def test_edit_deadline_is_thursday_end_of_day():
    dl = policy.edit_deadline(MON)
    assert dl == datetime(2025, 9, 4, 23, 59, 59, 999000)


def test_can_edit_online_never_on_weekends():
    for now in _every_hour():
        if now.weekday() >= 5:
            assert policy.can_edit_online(now) is False


@pytest.mark.parametrize("now,expected", [
    (datetime(2025, 9, 1, 10, 0), True),
    (datetime(2025, 9, 1, 8, 59), False),      # до начала рабочего дня
    (datetime(2025, 9, 4, 23, 30), True),
    (datetime(2025, 9, 5, 10, 0), False),      # пятница: после дедлайна
])
def test_can_edit_online(now, expected):
    assert policy.can_edit_online(now) is expected


def test_aware_now_is_converted_to_studio_zone():
    # 01:00 UTC == 10:00 в Сеуле
    now = datetime(2025, 9, 1, 1, 0, tzinfo=timezone.utc)
    assert policy.can_edit_online(now) is True


@pytest.mark.parametrize("shoot_date,days_left,urgency,can_edit,needs_contact", [
    ("2025-09-05", 4, "safe", True, False),
    ("2025-09-04", 3, "contact", False, True),
    ("2025-09-02", 1, "contact", False, True),
    ("2025-09-01", 0, "danger", False, False),
    ("2025-08-31", -1, "danger", False, False),
])
def test_schedule_edit_policy_buckets(shoot_date, days_left, urgency, can_edit, needs_contact):
    p = policy.schedule_edit_policy(shoot_date, MON)
    assert p.days_left == days_left
    assert p.urgency == urgency
    assert p.can_direct_edit is can_edit
    assert p.needs_contact is needs_contact
    if needs_contact:
        assert p.contact_info and p.reason == "needs_contact"


def test_days_left_negative_only_for_past_days():
    now = datetime(2025, 9, 3, 17, 45)
    for offset in range(-5, 6):
        d = now.date() + timedelta(days=offset)
        assert (policy.schedule_edit_policy(d, now).days_left < 0) is (d < now.date())


def test_far_date_after_deadline_is_safe_but_not_editable():
    p = policy.schedule_edit_policy("2025-09-20", datetime(2025, 9, 5, 10, 0))
    assert p.urgency == "safe"
    assert p.can_direct_edit is False


def test_unparsable_date_degrades_permissively():
    p = policy.schedule_edit_policy("not-a-date", MON)
    assert p.days_left is None
    assert p.urgency == "safe"
    assert p.can_direct_edit is True
    assert policy.schedule_edit_policy(None, datetime(2025, 9, 6, 12)).can_direct_edit is False


def test_cancel_policy_matches_edit_policy():
    assert policy.cancel_policy("2025-09-03", MON) == policy.schedule_edit_policy("2025-09-03", MON)


def test_remaining_edit_time():
    rem = policy.remaining_edit_time(MON)
    assert (rem.days, rem.hours, rem.minutes) == (3, 13, 59)
    assert rem.total_minutes == 3 * 1440 + 13 * 60 + 59
    assert policy.remaining_edit_time(datetime(2025, 9, 5, 10)).total_minutes == 0


@pytest.mark.parametrize("now,urgency", [
    (datetime(2025, 9, 1, 10, 0), "safe"),
    (datetime(2025, 9, 3, 9, 0), "safe"),       # 1 д 14 ч
    (datetime(2025, 9, 3, 20, 0), "warning"),   # 1 д 3 ч
    (datetime(2025, 9, 4, 9, 0), "warning"),    # 14 ч
    (datetime(2025, 9, 4, 12, 0), "danger"),    # 11 ч
    (datetime(2025, 9, 6, 12, 0), "danger"),    # суббота
])
def test_status_message_urgency(now, urgency):
    assert policy.status_message(now).urgency == urgency


def test_status_message_closed_has_contact():
    msg = policy.status_message(datetime(2025, 9, 6, 12, 0), contact_info="тел. 123")
    assert msg.can_edit is False
    assert msg.contact_info == "тел. 123"


def test_can_edit_schedule():
    assert policy.can_edit_schedule("approved", "2025-09-10", MON) is False
    assert policy.can_edit_schedule("pending", "2025-09-10", MON) is True      # окно регистрации
    assert policy.can_edit_schedule("pending", "2025-09-05", MON) is True      # D-4
    assert policy.can_edit_schedule("pending", "2025-09-03", MON) is False     # D-2
