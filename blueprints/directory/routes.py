from __future__ import annotations
import logging
from typing import Any

from flask import Blueprint, jsonify, request, abort
from flask_login import login_required
from sqlalchemy.exc import IntegrityError

from blueprints.auth.routes import admin_required
from extensions import db
from models import ShootingType, Studio, StudioShootingType
from .schemas import ShootingTypeIn, ShootingTypeOut, StudioIn, StudioOut, StudioShootingTypeIn

log = logging.getLogger(__name__)

api_bp = Blueprint("directory_api", __name__)


# ----------------------- Helpers -----------------------
def ok(data: Any, status: int = 200):
    return jsonify(data), status


def _handle_integrity_error(ex: IntegrityError):
    log.warning("integrity error: %s", getattr(ex, "orig", ex))
    return jsonify({"ok": False, "errors": [{"code": "UNIQUE_CONSTRAINT"}]}), 409


def _studio_out(s: Studio) -> dict:
    out = StudioOut.model_validate({"id": s.id, "name": s.name, "sort_order": s.sort_order,
                                    "is_active": s.is_active}).model_dump(mode="json")
    out["shooting_types"] = [
        {"id": m.shooting_type_id, "name": m.shooting_type.name, "is_primary": m.is_primary}
        for m in s.shooting_types
    ]
    return out


# ----------------------- Studios -----------------------
@api_bp.get("/studios")
@login_required
def api_studios_list():
    rows = Studio.query.order_by(Studio.sort_order.asc(), Studio.id.asc()).all()
    return ok({"items": [_studio_out(s) for s in rows]})


@api_bp.post("/admin/studios")
@admin_required
def api_studios_create():
    parsed = StudioIn.model_validate(request.get_json(silent=True) or {})
    s = Studio(name=parsed.name.strip(), sort_order=parsed.sort_order, is_active=parsed.is_active)
    db.session.add(s)
    try:
        db.session.commit()
    except IntegrityError as ex:
        db.session.rollback()
        return _handle_integrity_error(ex)
    return ok(_studio_out(s), 201)


@api_bp.post("/admin/studios/<int:sid>/shooting-types")
@admin_required
def api_studio_link_type(sid: int):
    studio = db.session.get(Studio, sid) or abort(404)
    parsed = StudioShootingTypeIn.model_validate(request.get_json(silent=True) or {})
    if parsed.shooting_type_id is not None:
        st = db.session.get(ShootingType, parsed.shooting_type_id)
    elif parsed.shooting_type:
        st = ShootingType.query.filter_by(name=parsed.shooting_type.strip()).first()
    else:
        abort(400, description="shooting_type_id or shooting_type required")
    if st is None:
        abort(404)
    link = StudioShootingType.query.filter_by(studio_id=studio.id, shooting_type_id=st.id).first()
    if link is None:
        link = StudioShootingType(studio_id=studio.id, shooting_type_id=st.id)
        db.session.add(link)
    link.is_primary = parsed.is_primary
    db.session.commit()
    return ok(_studio_out(studio))


# ----------------------- Shooting types -----------------------
@api_bp.get("/shooting-types")
@login_required
def api_shooting_types_list():
    rows = ShootingType.query.filter_by(is_active=True).order_by(ShootingType.name.asc()).all()
    return ok({"items": [ShootingTypeOut.model_validate({"id": t.id, "name": t.name, "is_active": t.is_active})
                         .model_dump(mode="json") for t in rows]})


@api_bp.post("/admin/shooting-types")
@admin_required
def api_shooting_types_create():
    parsed = ShootingTypeIn.model_validate(request.get_json(silent=True) or {})
    t = ShootingType(name=parsed.name.strip(), is_active=parsed.is_active)
    db.session.add(t)
    try:
        db.session.commit()
    except IntegrityError as ex:
        db.session.rollback()
        return _handle_integrity_error(ex)
    return ok(ShootingTypeOut.model_validate({"id": t.id, "name": t.name, "is_active": t.is_active})
              .model_dump(mode="json"), 201)
