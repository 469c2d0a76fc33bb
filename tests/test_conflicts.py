from __future__ import annotations
from datetime import date, time
import pytest
from sqlalchemy.exc import OperationalError

from app import create_app
from extensions import db
from fixtures.demo_studios import seed_directory
from models import Schedule, ScheduleStatus, Studio
from blueprints.schedule import conflicts
from blueprints.schedule.conflicts import ConflictQuery, check_availability, require_available
from blueprints.schedule.errors import ConflictError, PersistenceFailure

D = date(2025, 9, 1)


@pytest.fixture()
def app_ctx():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        seed_directory()
        yield app
        db.session.remove()
        db.drop_all()


def _studio(name: str) -> Studio:
    return Studio.query.filter_by(name=name).one()


def _book(studio_name, start, end, shooting_type="PPT", status=ScheduleStatus.APPROVED, **kw):
    s = Schedule(shoot_date=kw.pop("shoot_date", D), start_time=start, end_time=end,
                 professor_name="Ким Минсу", shooting_type=shooting_type,
                 studio_id=_studio(studio_name).id, approval_status=status, **kw)
    db.session.add(s)
    db.session.commit()
    return s


def _q(start, end, shooting_type="PPT", **kw):
    return ConflictQuery(shoot_date=D, start=start, end=end, shooting_type=shooting_type, **kw)


def test_free_day_recommends_primary_and_lists_others(app_ctx):
    res = check_availability(_q(time(10, 0), time(14, 30)))
    assert res.ok is True
    assert res.recommended.name == "Студия 1" and res.recommended.is_primary
    assert [a.name for a in res.alternatives] == ["Студия 2", "Студия 3"]


def test_busy_primary_falls_back_to_listing_order(app_ctx):
    _book("Студия 1", time(10, 0), time(11, 0))
    res = check_availability(_q(time(10, 0), time(11, 0)))
    assert res.ok is True
    assert res.recommended.name == "Студия 2"
    assert [a.name for a in res.alternatives] == ["Студия 3"]
    assert res.busy[0]["studio_id"] == _studio("Студия 1").id


def test_touching_ranges_do_not_conflict(app_ctx):
    for name in ("Студия 1", "Студия 2", "Студия 3"):
        _book(name, time(9, 0), time(10, 0))
    res = check_availability(_q(time(10, 0), time(11, 0)))
    assert res.ok is True
    assert res.recommended.name == "Студия 1"


def test_all_busy_returns_three_earliest_suggestions(app_ctx):
    for name in ("Студия 1", "Студия 2", "Студия 3"):
        _book(name, time(9, 0), time(10, 30))
    res = check_availability(_q(time(10, 0), time(11, 0)))
    assert res.ok is False
    assert res.reason == "ALL_STUDIOS_BUSY"
    assert res.suggestions == [
        {"start": "10:30", "end": "11:30"},
        {"start": "11:00", "end": "12:00"},
        {"start": "11:30", "end": "12:30"},
    ]


def test_suggestions_respect_end_of_working_day(app_ctx):
    for name in ("Студия 1", "Студия 2", "Студия 3"):
        _book(name, time(9, 0), time(20, 0))
    res = check_availability(_q(time(10, 0), time(12, 0)))
    assert res.suggestions == [{"start": "20:00", "end": "22:00"}]


def test_no_compatible_studio_fails_without_scanning(app_ctx, monkeypatch):
    def _boom(*a, **kw):
        raise AssertionError("bookings must not be loaded")
    monkeypatch.setattr(conflicts, "_bookings", _boom)
    res = check_availability(_q(time(10, 0), time(11, 0), shooting_type="Нет такого"))
    assert res.ok is False
    assert res.reason == "NO_COMPATIBLE_STUDIO"
    assert res.suggestions == []


def test_cancelled_and_inactive_bookings_are_ignored(app_ctx):
    _book("Студия 4", time(10, 0), time(12, 0), shooting_type="Хромакей", status=ScheduleStatus.CANCELLED)
    _book("Студия 4", time(10, 0), time(12, 0), shooting_type="Хромакей", is_active=False)
    res = check_availability(_q(time(10, 0), time(11, 0), shooting_type="Хромакей"))
    assert res.ok is True


def test_own_booking_is_excluded(app_ctx):
    own = _book("Студия 4", time(10, 0), time(12, 0), shooting_type="Хромакей")
    res = check_availability(_q(time(11, 0), time(13, 0), shooting_type="Хромакей",
                                exclude_schedule_id=own.id))
    assert res.ok is True
    assert res.recommended.name == "Студия 4"


def test_split_siblings_never_conflict(app_ctx):
    parent = _book("Студия 4", time(10, 0), time(14, 0), shooting_type="Хромакей",
                   is_active=False, is_split=True)
    _book("Студия 4", time(10, 0), time(12, 0), shooting_type="Хромакей",
          parent_schedule_id=parent.id, is_split_schedule=True)
    with_parent = check_availability(_q(time(11, 0), time(13, 0), shooting_type="Хромакей",
                                        parent_schedule_id=parent.id))
    assert with_parent.ok is True
    without = check_availability(_q(time(11, 0), time(13, 0), shooting_type="Хромакей"))
    assert without.ok is False and without.reason == "ALL_STUDIOS_BUSY"


def test_require_available_raises_with_suggestions(app_ctx):
    _book("Студия 4", time(9, 0), time(12, 0), shooting_type="Хромакей")
    with pytest.raises(ConflictError) as ei:
        require_available(_q(time(10, 0), time(11, 0), shooting_type="Хромакей"))
    assert ei.value.code == "ALL_STUDIOS_BUSY"
    assert ei.value.suggestions[0] == {"start": "12:00", "end": "13:00"}


def test_require_available_checks_requested_studio(app_ctx):
    _book("Студия 1", time(10, 0), time(11, 0))
    assert require_available(_q(time(10, 0), time(11, 0)), _studio("Студия 3").id) == _studio("Студия 3").id
    with pytest.raises(ConflictError) as ei:
        require_available(_q(time(10, 0), time(11, 0)), _studio("Студия 1").id)
    assert ei.value.code == "STUDIO_BUSY"


def test_find_available_studio(app_ctx):
    assert conflicts.find_available_studio("Интерактив", D, time(10, 0), time(11, 0)) == _studio("Студия 2").id
    assert conflicts.find_available_studio("Нет такого", D, time(10, 0), time(11, 0)) is None


def test_read_failure_fails_closed(app_ctx, monkeypatch):
    def _down(*a, **kw):
        raise OperationalError("SELECT", {}, Exception("db down"))
    monkeypatch.setattr(conflicts, "compatible_studios", _down)
    with pytest.raises(PersistenceFailure) as ei:
        check_availability(_q(time(10, 0), time(11, 0)))
    assert ei.value.code == "CONFLICT_CHECK_FAILED"


def test_find_conflicting_pairs(app_ctx):
    a = _book("Студия 1", time(9, 0), time(10, 30))
    b = _book("Студия 1", time(10, 0), time(11, 0))
    _book("Студия 1", time(11, 0), time(12, 0))           # касается b
    _book("Студия 2", time(9, 0), time(12, 0))            # другая студия
    pairs = conflicts.find_conflicting_pairs(Schedule.query.all())
    assert pairs == [(a.id, b.id)]
