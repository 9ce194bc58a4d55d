# roster_api/common/errors.py
from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from roster_api.common.http import fail

bp_errors = Blueprint("errors", __name__)


class APIError(Exception):
    """Custom API Error class."""
    status_code = 400
    code = "API_ERROR"

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload


class ValidationError(APIError):
    """A proposed change was rejected before touching the pending list or the database."""
    status_code = 422
    code = "VALIDATION_ERROR"


class NotFoundError(APIError):
    status_code = 404
    code = "NOT_FOUND"


class PersistenceError(APIError):
    """
    The atomic batch write failed and was rolled back.
    Retryable: the caller keeps its pending changes.
    """
    status_code = 409
    code = "PERSISTENCE_ERROR"


class NotificationError(Exception):
    """Delivery to the messaging transport failed. Never rendered to API clients."""

    def __init__(self, message, recipient=None, status=None):
        super().__init__(message)
        self.recipient = recipient
        self.status = status


@bp_errors.app_errorhandler(APIError)
def _api_error(e: APIError):
    return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)

@bp_errors.app_errorhandler(HTTPException)
def _http(e: HTTPException):
    return fail(message=e.description or "HTTP error", status=e.code or 400)

@bp_errors.app_errorhandler(IntegrityError)
def _integrity(e: IntegrityError):
    # 409 for unique/FK violations
    return fail(message="Conflict / integrity error", status=409, code="CONSTRAINT_ERROR",
                detail=str(e.orig) if getattr(e, "orig", None) else str(e))

@bp_errors.app_errorhandler(Exception)
def _unhandled(e: Exception):
    current_app.logger.exception(e)
    return fail(message="Internal Server Error", status=500)
