"""Standardised API error responses.

Usage
-----
    from buildroom.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

Service exceptions never need manual translation: ``register_error_handlers``
maps each ``buildroom.core.exceptions`` type to its status and code once.
"""

from __future__ import annotations

import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from buildroom.core.exceptions import (
    AuthenticationError,
    ConflictError,
    DuplicateExternalReferenceError,
    ForbiddenError,
    NoChangeError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from buildroom.models import db

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Identity – HTTP 401 / 403
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"

    # Conflict / state – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    DUPLICATE_EXTERNAL_REFERENCE = "ERR_DUPLICATE_EXTERNAL_REFERENCE"
    PRECONDITION_FAILED = "ERR_PRECONDITION_FAILED"
    NO_CHANGE = "ERR_NO_CHANGE"

    # Rate limiting – HTTP 429
    RATE_LIMITED = "ERR_RATE_LIMITED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_INVALID: 400,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_DUPLICATE: 409,
    E.DUPLICATE_EXTERNAL_REFERENCE: 409,
    E.PRECONDITION_FAILED: 409,
    E.NO_CHANGE: 409,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}

# Most specific first: subclasses must precede their bases.
_EXCEPTION_CODES: tuple[tuple[type[Exception], str], ...] = (
    (ValidationError, E.VALIDATION_INVALID),
    (AuthenticationError, E.UNAUTHENTICATED),
    (ForbiddenError, E.FORBIDDEN),
    (NotFoundError, E.NOT_FOUND),
    (NoChangeError, E.NO_CHANGE),
    (PreconditionFailedError, E.PRECONDITION_FAILED),
    (DuplicateExternalReferenceError, E.DUPLICATE_EXTERNAL_REFERENCE),
    (ConflictError, E.CONFLICT_DUPLICATE),
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (blocking system ids, offending id, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def code_for(exc: Exception) -> str:
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            return code
    return E.INTERNAL


def register_error_handlers(app):
    """Map workflow exceptions and stray HTTP errors to JSON bodies."""

    def _handle_workflow_error(error):
        # Releases any row lock taken before the failure surfaced.
        db.session.rollback()
        code = code_for(error)
        if code == E.FORBIDDEN:
            logger.warning("Forbidden: %s", error)
        else:
            logger.info("%s on %s %s: %s", code, request.method, request.path, error)
        return api_error(code, str(error), details=getattr(error, "details", None))

    for exc_type, _code in _EXCEPTION_CODES:
        app.register_error_handler(exc_type, _handle_workflow_error)

    @app.errorhandler(404)
    def _not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed")

    @app.errorhandler(429)
    def _rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests",
                         details={"retry_after": e.description})

    @app.errorhandler(HTTPException)
    def _http_error(e):
        return api_error(E.VALIDATION_INVALID, e.description or e.name, status=e.code)

    @app.errorhandler(Exception)
    def _unexpected(e):
        # Cause stays in the log; the caller gets a generic message.
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return api_error(E.INTERNAL, "Internal server error")
