from __future__ import annotations
from datetime import date, datetime, time
import pytest

from app import create_app
from extensions import db
from fixtures.demo_studios import seed_directory
from models import Schedule, ScheduleHistory, ScheduleStatus as S, Studio
from blueprints.notifications.signals import schedule_changed
from blueprints.schedule import lifecycle, splitter
from blueprints.schedule.errors import PolicyViolation, ValidationError
from blueprints.schedule.history import Actor, history_for
from blueprints.schedule.lifecycle import Action, TRANSITIONS, TERMINAL

ADMIN = Actor(id=1, name="Админ", role="ADMIN")
PROF = Actor(id=2, name="Ким Минсу", role="PROFESSOR")
OTHER = Actor(id=3, name="Пак", role="PROFESSOR")
NOW = datetime(2025, 9, 1, 10, 0)


@pytest.fixture()
def app_ctx():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        seed_directory()
        yield app
        db.session.remove()
        db.drop_all()


def _schedule(status=S.PENDING, **kw) -> Schedule:
    studio = Studio.query.filter_by(name="Студия 1").one()
    s = Schedule(shoot_date=date(2025, 9, 10), start_time=time(10, 0), end_time=time(12, 0),
                 professor_name="Ким Минсу", shooting_type="PPT", studio_id=studio.id,
                 approval_status=status, requested_by_id=PROF.id, **kw)
    db.session.add(s)
    db.session.commit()
    return s


def test_transition_table_never_leaves_terminal_states():
    for (action, status) in TRANSITIONS:
        assert status not in TERMINAL


def test_happy_path_to_confirmed(app_ctx):
    s = _schedule()
    lifecycle.transition(s.id, "request_approval", PROF, now=NOW)
    assert s.approval_status == S.APPROVAL_REQUESTED
    assert s.previous_status == S.PENDING
    lifecycle.transition(s.id, Action.APPROVE, ADMIN, now=NOW)
    assert s.approval_status == S.APPROVED
    assert s.approved_by_id == ADMIN.id and s.approved_at == NOW
    assert s.previous_status is None
    lifecycle.transition(s.id, Action.CONFIRM, ADMIN, now=NOW)
    assert s.approval_status == S.CONFIRMED


def test_modification_cycle_requires_reason(app_ctx):
    s = _schedule(S.APPROVED)
    with pytest.raises(ValidationError) as ei:
        lifecycle.transition(s.id, "request_modification", PROF, reason="  ", now=NOW)
    assert ei.value.code == "REASON_REQUIRED"

    lifecycle.transition(s.id, "request_modification", PROF, reason="другое время", now=NOW)
    assert s.approval_status == S.MODIFICATION_REQUESTED
    assert s.modification_reason == "другое время"
    lifecycle.transition(s.id, "approve_modification", ADMIN, now=NOW)
    assert s.approval_status == S.MODIFICATION_APPROVED
    lifecycle.transition(s.id, "complete_modification", PROF, now=NOW)
    assert s.approval_status == S.APPROVED


def test_revoke_restores_previous_status(app_ctx):
    s = _schedule(S.APPROVED)
    lifecycle.transition(s.id, "request_cancellation", PROF, reason="болезнь", now=NOW)
    assert s.approval_status == S.CANCELLATION_REQUESTED
    lifecycle.transition(s.id, "revoke", PROF, now=NOW)
    assert s.approval_status == S.APPROVED
    assert s.previous_status is None


def test_cancellation_is_absorbing(app_ctx):
    s = _schedule(S.APPROVED)
    lifecycle.transition(s.id, "request_cancellation", PROF, reason="болезнь", now=NOW)
    lifecycle.transition(s.id, "approve_cancellation", ADMIN, now=NOW)
    assert s.approval_status == S.CANCELLED
    assert s.is_active is False
    for action in Action:
        with pytest.raises(PolicyViolation):
            lifecycle.transition(s.id, action, ADMIN, reason="x", now=NOW)


def test_delete_pending(app_ctx):
    s = _schedule()
    lifecycle.transition(s.id, "delete", PROF, now=NOW)
    assert s.approval_status == S.DELETED and s.is_active is False
    assert s.deletion_reason == "deleted"


def test_invalid_and_forbidden_transitions(app_ctx):
    s = _schedule()
    with pytest.raises(PolicyViolation) as ei:
        lifecycle.transition(s.id, "confirm", ADMIN, now=NOW)
    assert ei.value.code == "INVALID_TRANSITION"
    assert "request_approval" in ei.value.details["allowed"]

    with pytest.raises(PolicyViolation) as ei:
        lifecycle.transition(s.id, "approve", PROF, now=NOW)
    assert ei.value.code == "ADMIN_REQUIRED"

    with pytest.raises(PolicyViolation) as ei:
        lifecycle.transition(s.id, "request_approval", OTHER, now=NOW)
    assert ei.value.code == "NOT_OWNER"

    with pytest.raises(ValidationError) as ei:
        lifecycle.transition(s.id, "fly_away", ADMIN, now=NOW)
    assert ei.value.code == "UNKNOWN_ACTION"


def test_every_transition_writes_history_and_emits_event(app_ctx):
    received = []

    def _listener(sender, **kw):
        received.append((sender, kw["schedule"]["approval_status"]))

    schedule_changed.connect(_listener)
    try:
        s = _schedule()
        lifecycle.transition(s.id, "request_approval", PROF, now=NOW)
        lifecycle.transition(s.id, "approve", ADMIN, now=NOW)
    finally:
        schedule_changed.disconnect(_listener)

    assert received == [("request_approval", "approval_requested"), ("approve", "approved")]
    entries = history_for(s.id)
    assert [e["change_type"] for e in entries] == ["status_changed", "approved"]
    assert entries[1]["old"]["approval_status"] == "approval_requested"
    assert entries[1]["new"]["approval_status"] == "approved"


def test_failing_subscriber_does_not_break_transition(app_ctx):
    def _broken(sender, **kw):
        raise RuntimeError("messenger down")

    schedule_changed.connect(_broken)
    try:
        s = _schedule()
        lifecycle.transition(s.id, "request_approval", PROF, now=NOW)
    finally:
        schedule_changed.disconnect(_broken)
    assert db.session.get(Schedule, s.id).approval_status == S.APPROVAL_REQUESTED


def test_request_on_split_child_applies_to_whole_group(app_ctx):
    s = _schedule(S.APPROVED)
    res = splitter.split_schedule(s.id, ["11:00"], "x", ADMIN, now=NOW)
    rows = lifecycle.transition(res.children[0].id, "request_cancellation", PROF, reason="отмена", now=NOW)
    assert len(rows) == 2
    for c in res.children:
        db.session.refresh(c)
        assert c.approval_status == S.CANCELLATION_REQUESTED
        assert c.cancellation_reason == "отмена"
    assert ScheduleHistory.query.filter_by(change_type="status_changed").count() == 2


def test_cancellation_and_rejection_record_deciding_admin(app_ctx):
    s = _schedule(S.APPROVED)
    lifecycle.transition(s.id, "request_cancellation", PROF, reason="болезнь", now=NOW)
    lifecycle.transition(s.id, "approve_cancellation", ADMIN, now=NOW)
    assert s.approved_by_id == ADMIN.id and s.approved_at == NOW

    r = _schedule()
    lifecycle.transition(r.id, "request_approval", PROF, now=NOW)
    lifecycle.transition(r.id, "reject", ADMIN, now=NOW)
    assert r.approval_status == S.REJECTED
    assert r.approved_by_id == ADMIN.id and r.approved_at == NOW


def test_inactive_rows_accept_no_actions(app_ctx):
    s = _schedule(S.APPROVED)
    res = splitter.split_schedule(s.id, ["11:00"], "x", ADMIN, now=NOW)
    with pytest.raises(PolicyViolation) as ei:
        lifecycle.transition(s.id, "request_cancellation", PROF, reason="отмена", now=NOW)
    assert ei.value.code == "INVALID_TRANSITION"
    db.session.refresh(s)
    assert s.approval_status == S.APPROVED
    assert ScheduleHistory.query.filter_by(schedule_id=s.id, change_type="status_changed").count() == 0

    splitter.merge_split(s.id, ADMIN)
    with pytest.raises(PolicyViolation):
        lifecycle.transition(res.children[0].id, "confirm", ADMIN, now=NOW)
