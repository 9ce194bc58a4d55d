from __future__ import annotations

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required

from roster_api.common.auth import requires_roles, current_user_id
from roster_api.common.errors import ValidationError, NotFoundError
from roster_api.common.http import ok
from roster_api.common.paging import page_limit, parse_date_any
from roster_api.extensions import db
from roster_api.models.department import Department
from roster_api.models.shift import EmployeeShift
from roster_api.models.shift_change_log import ShiftChangeLog
from roster_api.services.change_classifier import is_notifiable
from roster_api.services.change_tracker import ChangeTracker
from roster_api.services.notifications import NotificationDispatcher
from roster_api.services.shift_change_log import ShiftChangeLogStore
from roster_api.services.shift_codes import SHIFT_DESCRIPTIONS, NO_SHIFT, describe
from roster_api.services.shift_commit import ShiftCommitter
from roster_api.services.shift_grid import ShiftGrid

bp = Blueprint("shifts", __name__, url_prefix="/api/v1/shifts")


# ---------- helpers ----------
def _body() -> dict:
    d = request.get_json(silent=True, force=True)
    return d if isinstance(d, dict) else {}


def _as_int(val, field):
    if val in (None, "", "null") or isinstance(val, bool):
        raise ValidationError(f"{field} is required and must be integer")
    try:
        return int(val)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be integer")


def _year_month(src) -> tuple[int, int]:
    year = _as_int(src.get("year", src.get("año")), "year")
    month = _as_int(src.get("month", src.get("mes")), "month")
    if not 1 <= month <= 12:
        raise ValidationError("month must be 1..12")
    return year, month


def _department_id(src):
    """Optional unit filter; ``role_id`` / ``rol_id`` are accepted as aliases."""
    raw = src.get("department_id", src.get("role_id", src.get("rol_id")))
    if raw in (None, "", "null"):
        return None
    dept_id = _as_int(raw, "department_id")
    if not db.session.get(Department, dept_id):
        raise NotFoundError("Department not found")
    return dept_id


def _registry():
    return current_app.extensions["edit_sessions"]


def _committer(comment=None) -> ShiftCommitter:
    worker = current_app.extensions.get("notification_worker")
    dispatcher = NotificationDispatcher(
        current_app.extensions["notify_config"],
        wake=worker.wake if worker is not None else None,
    )
    return ShiftCommitter(ShiftChangeLogStore(), dispatcher, changed_by=current_user_id(), comment=comment)


def _session_or_404(sid: str):
    s = _registry().get(sid, user_id=current_user_id())
    if s is None:
        raise NotFoundError("Edit session not found or expired")
    return s


def _edit_value(d: dict):
    # "value" is the canonical key; accept new_value too
    return d.get("value", d.get("new_value", NO_SHIFT))


# ---------- vocabulary & grid ----------
@bp.get("/codes")
@jwt_required()
def list_codes():
    cfg = current_app.extensions["notify_config"]
    items = [{"code": NO_SHIFT, "description": describe(NO_SHIFT), "notifiable": False}]
    for code, label in SHIFT_DESCRIPTIONS.items():
        items.append({"code": code, "description": label, "notifiable": is_notifiable(NO_SHIFT, code, cfg)})
    return ok(items)


@bp.get("/departments")
@jwt_required()
def list_departments():
    items = Department.query.filter(Department.is_active.is_(True)).order_by(Department.name.asc()).all()
    return ok([d.to_dict() for d in items])


@bp.get("/grid")
@jwt_required()
def get_grid():
    """?year=&month=&department_id="""
    year, month = _year_month(request.args)
    dept_id = _department_id(request.args)
    grid = ShiftGrid.load(year, month, department_id=dept_id)
    return ok(grid.to_rows(), year=year, month=month, days=grid.days_in_month, department_id=dept_id)


# ---------- editing sessions ----------
@bp.post("/sessions")
@requires_roles("supervisor")
def open_session():
    """Body: { "year": 2025, "month": 3, "department_id": 1 }   // department optional"""
    d = _body()
    year, month = _year_month(d)
    tracker = ChangeTracker(ShiftGrid.load(year, month, department_id=_department_id(d)))
    s = _registry().open(tracker, user_id=current_user_id())
    data = s.to_dict()
    data["grid"] = tracker.grid.to_rows()
    return ok(data, status=201)


@bp.get("/sessions/<sid>")
@requires_roles("supervisor")
def get_session(sid: str):
    s = _session_or_404(sid)
    data = s.to_dict()
    if request.args.get("grid") in ("1", "true"):
        data["grid"] = s.tracker.grid.to_rows()
    return ok(data)


@bp.post("/sessions/<sid>/edits")
@requires_roles("supervisor")
def register_edit(sid: str):
    """
    POST /api/v1/shifts/sessions/{sid}/edits
    Body: { "employee_id": 10, "day": 15, "value": "T" }   // "" clears the cell

    Name and RUT always come from the grid row; client-sent values are ignored.
    """
    s = _session_or_404(sid)
    d = _body()
    with s.lock:
        change = s.tracker.register_change(
            d.get("employee_id", d.get("employeeId")),
            None,
            None,
            d.get("day"),
            _edit_value(d),
        )
        pending = [c.to_dict() for c in s.tracker.changes]
    return ok({"change": change.to_dict() if change else None, "pending": pending})


@bp.post("/sessions/<sid>/undo")
@requires_roles("supervisor")
def undo_last(sid: str):
    s = _session_or_404(sid)
    with s.lock:
        undone = s.tracker.undo_last_change()
        pending = [c.to_dict() for c in s.tracker.changes]
    return ok({"undone": undone.to_dict() if undone else None, "pending": pending})


@bp.delete("/sessions/<sid>/changes/<cid>")
@requires_roles("supervisor")
def undo_one(sid: str, cid: str):
    s = _session_or_404(sid)
    with s.lock:
        undone = s.tracker.undo_specific_change(cid)
        pending = [c.to_dict() for c in s.tracker.changes]
    return ok({"undone": undone.to_dict() if undone else None, "pending": pending})


@bp.post("/sessions/<sid>/clear")
@requires_roles("supervisor")
def clear_all(sid: str):
    s = _session_or_404(sid)
    with s.lock:
        reverted = s.tracker.clear_all()
    return ok({"reverted": len(reverted), "pending": []})


@bp.post("/sessions/<sid>/commit")
@requires_roles("supervisor")
def commit_session(sid: str):
    """
    POST /api/v1/shifts/sessions/{sid}/commit
    Body: { "comment": "optional reason" }

    On failure the session keeps its pending changes and can be committed again.
    """
    s = _session_or_404(sid)
    comment = _body().get("comment") or _body().get("comentario")
    with s.lock:
        result = s.tracker.commit(_committer(comment))
    return ok(result.to_dict())


@bp.delete("/sessions/<sid>")
@requires_roles("supervisor")
def abandon_session(sid: str):
    _session_or_404(sid)
    _registry().discard(sid)
    return ok({"id": sid, "discarded": True})


# ---------- one-shot commit ----------
@bp.post("/changes")
@requires_roles("supervisor")
def commit_changes():
    """
    POST /api/v1/shifts/changes
    Body:
    {
      "year": 2025, "month": 3,
      "changes": [ { "employee_id": 10, "day": 15, "value": "T" }, ... ],
      "comment": "optional"
    }
    Edits are replayed through a fresh tracker, so repeated cells collapse and
    edits that match the stored value are dropped.
    """
    d = _body()
    year, month = _year_month(d)
    raw = d.get("changes")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("No changes to save")

    ids = set()
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("each change must be an object")
        ids.add(_as_int(item.get("employee_id", item.get("employeeId")), "employee_id"))

    tracker = ChangeTracker(ShiftGrid.load(year, month, employee_ids=ids))
    for item in raw:
        tracker.register_change(
            item.get("employee_id", item.get("employeeId")),
            None,
            None,
            item.get("day"),
            _edit_value(item),
        )
    if not len(tracker):
        return ok({"logged": 0, "log_ids": [], "notifiable": 0, "queued_notifications": 0})
    result = tracker.commit(_committer(d.get("comment") or d.get("comentario")))
    return ok(result.to_dict(), status=201)


# ---------- audit trail ----------
@bp.get("/change-log")
@jwt_required()
def list_change_log():
    """?employee_id=&from=YYYY-MM-DD&to=YYYY-MM-DD&page=&size="""
    eid = request.args.get("employee_id", type=int)
    dfrom = parse_date_any(request.args.get("from"))
    dto = parse_date_any(request.args.get("to"))
    page, size = page_limit()

    q = ShiftChangeLogStore().query(employee_id=eid, date_from=dfrom, date_to=dto)
    total = q.count()
    items = q.offset((page - 1) * size).limit(size).all()
    return ok([r.to_dict() for r in items], page=page, size=size, total=total)


@bp.get("/change-log/employee/<int:employee_id>")
@jwt_required()
def employee_change_log(employee_id: int):
    items = ShiftChangeLogStore().query(employee_id=employee_id).all()
    return ok([r.to_dict() for r in items])


@bp.get("/<int:employee_shift_id>/history")
@jwt_required()
def shift_history(employee_shift_id: int):
    if not db.session.get(EmployeeShift, employee_shift_id):
        raise NotFoundError("Shift not found")
    items = (
        ShiftChangeLog.query
        .filter(ShiftChangeLog.employee_shift_id == employee_shift_id)
        .order_by(ShiftChangeLog.changed_at.desc())
        .all()
    )
    return ok([r.to_dict() for r in items])
