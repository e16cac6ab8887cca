# Overview: Maps service-layer exceptions onto JSON error responses.

from flask import jsonify

from ..services.concurrency import ConcurrencyConflictError
from ..validation import ConflictError, ForbiddenError, NotFoundError, ValidationError


_STATUS_BY_ERROR = (
    (ConflictError, 409),
    (ConcurrencyConflictError, 409),
    (ValidationError, 400),
    (ForbiddenError, 403),
    (NotFoundError, 404),
)

DOMAIN_ERRORS = tuple(exc_type for exc_type, _ in _STATUS_BY_ERROR)


def error_response(exc: Exception):
    """(json, status) for a domain error raised by a service."""
    for exc_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, exc_type):
            return jsonify({"error": str(exc)}), status
    return jsonify({"error": "Internal server error"}), 500
