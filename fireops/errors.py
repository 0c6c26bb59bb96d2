"""Error taxonomy for the JSON API.

Services raise these before mutating anything; the app-level handler
registered in create_app() renders them as
``{"success": false, "error": <message>}`` with the matching status code.
"""

import logging

from flask import jsonify
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class AuthenticationRequired(ApiError):
    status_code = 401
    default_message = "Unauthorized"


class AccessDenied(ApiError):
    status_code = 403
    default_message = "Forbidden"


class ValidationFailed(ApiError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class StateConflict(ApiError):
    """Operation is not valid for the record's current status."""

    status_code = 400
    default_message = "Operation not allowed in the current state"


class AlreadyExists(ApiError):
    status_code = 409
    default_message = "Record already exists"


class UpstreamFailure(ApiError):
    """Database or vendor call failed. Details go to the log only."""

    status_code = 500
    default_message = "Internal server error"


def error_response(message, status_code):
    return jsonify({"success": False, "error": message}), status_code


def register_error_handlers(app):
    """Render every error as JSON."""
    from fireops.extensions import db

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        if e.status_code >= 500:
            db.session.rollback()
        return error_response(e.message, e.status_code)

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(e):
        # Unique constraints back the single-use rules (one job per quote,
        # one invoice per job) when two requests race past the query check.
        db.session.rollback()
        logger.warning(f"Integrity error: {e.orig}")
        return error_response("Record conflicts with an existing record", 400)

    @app.errorhandler(StaleDataError)
    def handle_stale_data(e):
        db.session.rollback()
        logger.warning(f"Concurrent update rejected: {e}")
        return error_response(
            "Record was modified by another request. Please retry.", 400
        )

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return error_response(e.description or e.name, e.code)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        db.session.rollback()
        logger.error(f"Unhandled error: {e}", exc_info=True)
        return error_response("Internal server error", 500)
