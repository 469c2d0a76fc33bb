# blueprints/policy/routes.py
from __future__ import annotations
from flask import Blueprint, jsonify, request, current_app, abort

from . import services as svc
from .clock import request_now

api_bp = Blueprint("policy_api", __name__)


@api_bp.get("/policy/status")
def policy_status():
    now = request_now()
    contact = current_app.config.get("CONTACT_INFO")
    return jsonify({
        "now": now.isoformat(timespec="seconds"),
        "can_edit_online": svc.can_edit_online(now),
        "edit_deadline": svc.edit_deadline(now).isoformat(timespec="seconds"),
        "status": svc.status_message(now, contact).to_dict(),
        "week": svc.current_week_info(now).to_dict(),
    })


@api_bp.get("/policy/registration-window")
def policy_registration_window():
    now = request_now()
    start, end = svc.registration_window(now)
    return jsonify({
        "start": start.isoformat(),
        "end": end.isoformat(),
        "dates": [d.isoformat() for d in svc.registration_dates(now)],
    })


@api_bp.get("/policy/schedule")
def policy_for_date():
    d = request.args.get("date")
    if not d:
        abort(400, description="Bad date")
    now = request_now()
    contact = current_app.config.get("CONTACT_INFO")
    return jsonify({
        "edit": svc.schedule_edit_policy(d, now, contact).to_dict(),
        "cancel": svc.cancel_policy(d, now, contact).to_dict(),
        "in_registration_range": svc.is_date_in_registration_range(d, now),
    })
