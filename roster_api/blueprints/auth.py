from datetime import timedelta

from flask import Blueprint, request, jsonify
from flask_jwt_extended import (
    create_access_token, create_refresh_token,
    jwt_required, get_jwt_identity
)

from roster_api.extensions import db
from roster_api.models.user import User

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")

def _user_payload(u: User):
    return {"id": u.id, "email": u.email, "full_name": u.full_name, "roles": u.role_codes()}

@bp.post("/login")
def login():
    data = request.get_json(silent=True, force=True)
    if not isinstance(data, dict):
        data = {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    u = User.query.filter_by(email=email).first()
    if not u or not u.check_password(password) or u.status != "active":
        return jsonify({"success": False, "error": {"message": "Invalid credentials"}}), 401

    roles = u.role_codes()
    add_claims = {"roles": roles, "email": u.email, "name": u.full_name}
    access  = create_access_token(identity=str(u.id), additional_claims=add_claims, expires_delta=timedelta(days=1))
    refresh = create_refresh_token(identity=str(u.id), additional_claims={"roles": roles})
    return jsonify({"success": True, "access": access, "refresh": refresh, "user": _user_payload(u)}), 200

@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    uid = get_jwt_identity()              # string identity
    u = db.session.get(User, int(uid)) if uid else None
    if not u:
        return jsonify({"success": False, "error": {"message": "User not found"}}), 401
    add_claims = {"roles": u.role_codes(), "email": u.email, "name": u.full_name}
    new_access = create_access_token(identity=str(u.id), additional_claims=add_claims)
    return jsonify({"success": True, "access": new_access}), 200

@bp.get("/me")
@jwt_required()
def me():
    uid = get_jwt_identity()
    u = db.session.get(User, int(uid)) if uid else None
    if not u:
        return jsonify({"success": False, "error": {"message": "User not found"}}), 404
    return jsonify({"success": True, "data": _user_payload(u)}), 200
