"""
Error taxonomy for Study Log.

Every rejection raised by the scoring engine and the stores is one of these.
Blueprints let them propagate; ``register_error_handlers`` turns them into
``{"error": ..., "code": ...}`` JSON responses with the matching status.
"""

from __future__ import annotations

import logging
from typing import Any

from flask import Flask, jsonify

logger = logging.getLogger(__name__)


class StudyLogError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    code = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StudyLogError):
    """Malformed input (minutes, category, date, ...). Nothing was written."""

    status_code = 400
    code = "validation_error"


class NotFoundError(StudyLogError):
    status_code = 404
    code = "not_found"


class UnauthorizedError(StudyLogError):
    """Not logged in, or bad credentials."""

    status_code = 401
    code = "unauthorized"


class ForbiddenError(StudyLogError):
    """Cross-student or cross-school access, or a missing role."""

    status_code = 403
    code = "forbidden"


class ConflictError(StudyLogError):
    """Duplicate plan, already-claimed reward, already-finalized day."""

    status_code = 409
    code = "conflict"


class DependencyError(StudyLogError):
    """Storage failure. The transaction was rolled back; the client may retry."""

    status_code = 503
    code = "dependency_error"


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(StudyLogError)
    def _handle_domain_error(err: StudyLogError):
        if isinstance(err, DependencyError):
            logger.error("dependency failure: %s %s", err.message, err.details)
        else:
            logger.warning("%s: %s", err.code, err.message)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(404)
    def _handle_404(_err):
        return jsonify({"error": "Not found", "code": "not_found"}), 404

    @app.errorhandler(405)
    def _handle_405(_err):
        return jsonify({"error": "Method not allowed", "code": "method_not_allowed"}), 405

    @app.errorhandler(429)
    def _handle_429(_err):
        return jsonify({"error": "Too many requests", "code": "rate_limited"}), 429
