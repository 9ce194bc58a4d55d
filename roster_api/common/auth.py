# roster_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from roster_api.common.http import fail
from roster_api.extensions import db
from roster_api.models.user import User
from roster_api.models.security import Role, UserRole


def _collect_roles_from_db(user_id: int) -> Set[str]:
    q = (
        db.session.query(Role.code)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .distinct()
    )
    return {row[0] for row in q.all()}


def current_user_id() -> int | None:
    """JWT identity as int (tokens carry it as a string)."""
    uid = get_jwt_identity()
    try:
        return int(uid) if uid is not None else None
    except (TypeError, ValueError):
        return None


def requires_roles(*codes: str):
    """
    Require that the current user has AT LEAST ONE of the given role codes.
    - Uses roles in JWT if present; falls back to DB.
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            claims = get_jwt() or {}
            jwt_roles = set(claims.get("roles") or [])
            if "admin" in jwt_roles:
                return fn(*args, **kwargs)

            uid = current_user_id()
            if uid is None:
                return fail("Unauthorized", status=401)

            roles: Set[str]
            if jwt_roles:
                roles = jwt_roles
            else:
                # fallback DB
                user = db.session.get(User, uid)
                if not user:
                    return fail("Unauthorized", status=401)
                roles = _collect_roles_from_db(user.id)

            if "admin" in roles:
                return fn(*args, **kwargs)

            if not any(r in roles for r in codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
