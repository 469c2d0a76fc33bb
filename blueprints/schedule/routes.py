# blueprints/schedule/routes.py
from __future__ import annotations
import logging
from datetime import date

from flask import Blueprint, request, jsonify, abort, current_app
from flask_login import login_required, current_user
from pydantic import ValidationError as PydanticValidationError
from werkzeug.exceptions import BadRequest

from blueprints.auth.routes import admin_required
from blueprints.policy.clock import request_now
from models import Schedule
from . import services as svc
from . import splitter, lifecycle
from .conflicts import ConflictQuery, check_availability, find_conflicting_pairs
from .errors import ScheduleError
from .history import Actor, history_for
from .schemas import ConflictCheckIn, ScheduleIn, ScheduleUpdate, SplitIn, TransitionIn
from .time_utils import recommend_break_time, check_break_time_conflict, time_options, break_time_options

log = logging.getLogger(__name__)

api_bp = Blueprint("schedule_api", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _actor() -> Actor:
    return Actor.from_user(current_user)


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        abort(400, description="Bad date")


# ---------- ошибки ----------
@api_bp.app_errorhandler(ScheduleError)
def handle_schedule_error(err: ScheduleError):
    if err.status_code >= 500:
        log.error("schedule error %s", err.code, extra={"event": "schedule_error"})
    return jsonify({"ok": False, "errors": [err.to_dict()]}), err.status_code


@api_bp.app_errorhandler(PydanticValidationError)
def handle_pydantic_error(err: PydanticValidationError):
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in err.errors()]
    return jsonify({"ok": False, "errors": [{"code": "BAD_REQUEST", "details": details}]}), 400


@api_bp.app_errorhandler(BadRequest)
def handle_bad_request(err):
    desc = getattr(err, "description", None)
    return jsonify({"ok": False, "errors": [{"code": "BAD_REQUEST", "message": desc}]}), 400


# ---------- справочные ----------
@api_bp.get("/schedules/time-options")
def api_time_options():
    return jsonify({"times": time_options(), "break_times": break_time_options()})


@api_bp.get("/schedules/break-recommendation")
def api_break_recommendation():
    start, end = request.args.get("start"), request.args.get("end")
    if not start or not end:
        abort(400, description="start and end required")
    rec = recommend_break_time(start, end)
    clash = check_break_time_conflict(start, end)
    return jsonify({
        "recommended": rec.to_dict() if rec else None,
        "meal_conflict": ({"type": clash[0], "suggested": clash[1].to_dict()} if clash else None),
    })


# ---------- конфликты ----------
@api_bp.post("/schedules/check")
@login_required
def api_check():
    data = ConflictCheckIn.model_validate(_payload())
    res = check_availability(ConflictQuery(
        shoot_date=data.shoot_date, start=data.start_time, end=data.end_time,
        shooting_type=data.shooting_type, exclude_schedule_id=data.exclude_schedule_id,
    ))
    return jsonify(res.to_dict())


@api_bp.get("/admin/conflicts")
@admin_required
def api_admin_conflicts():
    d = _date_arg("date")
    q = Schedule.query.filter(Schedule.is_active.is_(True))
    if d:
        q = q.filter(Schedule.shoot_date == d)
    pairs = find_conflicting_pairs(q.all())
    return jsonify({"ok": True, "pairs": [{"a": a, "b": b} for a, b in pairs]})


# ---------- CRUD ----------
@api_bp.get("/schedules")
@login_required
def api_list():
    items = svc.list_schedules(_date_arg("date_from"), _date_arg("date_to"), _actor())
    return jsonify({"ok": True, "items": items})


@api_bp.post("/schedules")
@login_required
def api_create():
    data = ScheduleIn.model_validate(_payload())
    rows = svc.create_schedule(data, _actor(), now=request_now())
    return jsonify({"ok": True, "items": [svc.serialize(s) for s in rows]}), 201


@api_bp.get("/schedules/<int:sid>")
@login_required
def api_get(sid: int):
    return jsonify(svc.schedule_details(sid, now=request_now(),
                                        contact_info=current_app.config.get("CONTACT_INFO")))


@api_bp.patch("/schedules/<int:sid>")
@login_required
def api_update(sid: int):
    data = ScheduleUpdate.model_validate(_payload())
    s = svc.update_schedule(sid, data, _actor(), now=request_now(),
                            contact_info=current_app.config.get("CONTACT_INFO"))
    return jsonify({"ok": True, "item": svc.serialize(s)})


@api_bp.get("/schedules/<int:sid>/history")
@login_required
def api_history(sid: int):
    return jsonify({"ok": True, "items": history_for(sid)})


@api_bp.post("/schedules/<int:sid>/<action>")
@login_required
def api_transition(sid: int, action: str):
    data = TransitionIn.model_validate(_payload())
    rows = lifecycle.transition(sid, action, _actor(), reason=data.reason, now=request_now())
    return jsonify({"ok": True, "items": [svc.serialize(s) for s in rows]})


# ---------- разделение ----------
@api_bp.post("/admin/schedules/<int:sid>/split")
@admin_required
def api_split(sid: int):
    data = SplitIn.model_validate(_payload())
    res = splitter.split_schedule(sid, data.split_points, data.reason, _actor(), now=request_now())
    return jsonify({
        "ok": True,
        "original_id": res.original_id,
        "group_id": res.group_id,
        "items": [svc.serialize(c) for c in res.children],
    }), 201


@api_bp.post("/admin/schedules/<int:sid>/merge")
@admin_required
def api_merge(sid: int):
    reason = _payload().get("reason")
    parent = splitter.merge_split(sid, _actor(), reason)
    return jsonify({"ok": True, "item": svc.serialize(parent)})
