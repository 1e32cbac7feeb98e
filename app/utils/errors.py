"""Standardised API response envelope.

Every response carries a boolean ``success`` flag plus either ``data`` or a
``reason`` string.

Usage
-----
    from app.utils.errors import api_ok, api_error

    return api_ok(record.to_dict(), status=201)
    return api_error("Record not found", status=404)
"""

from __future__ import annotations

import logging

from flask import jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    StoreError,
    TransitionError,
    ValidationError,
)
from app.models import db

logger = logging.getLogger(__name__)


def api_ok(data=None, *, status: int = 200, message: str | None = None):
    """Return a success envelope: ``{"success": true, "data": ...}``."""
    body: dict = {"success": True, "data": data}
    if message:
        body["message"] = message
    return jsonify(body), status


def api_error(reason: str, *, status: int = 400, details: dict | None = None):
    """Return a failure envelope: ``{"success": false, "reason": ...}``.

    Parameters
    ----------
    reason : str
        Human-readable explanation for developers / UI.
    status : int
        HTTP status code.
    details : dict, optional
        Field-level breakdown for validation failures.
    """
    body: dict = {"success": False, "reason": reason}
    if details:
        body["details"] = details
    return jsonify(body), status


def register_error_handlers(bp):
    """Install the domain-exception → HTTP mapping on a blueprint."""

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(str(error), status=400, details=error.details)

    @bp.errorhandler(AuthenticationError)
    def _handle_auth(error: AuthenticationError):
        return api_error(str(error), status=error.status)

    @bp.errorhandler(PermissionDenied)
    def _handle_forbidden(error: PermissionDenied):
        return api_error(str(error) or "Insufficient permissions", status=403)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        logger.info("Not found: %s", error)
        return api_error(f"{error.resource} not found", status=404)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(str(error), status=409)

    @bp.errorhandler(TransitionError)
    def _handle_transition(error: TransitionError):
        return api_error(str(error), status=409)

    @bp.errorhandler(StoreError)
    def _handle_store(error: StoreError):
        db.session.rollback()
        logger.error("Store error: %s", error)
        return api_error("Server Error", status=500)

    @bp.errorhandler(SQLAlchemyError)
    def _handle_db(error: SQLAlchemyError):
        db.session.rollback()
        logger.exception("Database error")
        return api_error("Server Error", status=500)

    return bp
