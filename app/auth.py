"""
Risk Governance Platform
Request-level identity helpers.

The JWT middleware (app.middleware.jwt_auth) authenticates the request;
these helpers resolve the calling actor and gate endpoints by role.

Usage:
    @records_bp.route("/records/export/<int:year>")
    @require_role("owner", "admin", "super-admin")
    def export(year):
        actor = current_actor()
"""

import functools
import logging

from flask import g, request

from app.core.exceptions import AuthenticationError, PermissionDenied
from app.models import db
from app.models.auth import User

logger = logging.getLogger(__name__)


def current_actor() -> User:
    """Return the User behind the bearer token.

    A valid token whose account no longer exists is treated like an
    invalid token (403).
    """
    cached = getattr(g, "current_actor", None)
    if cached is not None:
        return cached

    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        raise AuthenticationError("Access denied. No token provided.", status=401)
    user = db.session.get(User, user_id)
    if user is None:
        raise AuthenticationError("Invalid or expired token.", status=403)
    g.current_actor = user
    return user


def require_role(*roles: str):
    """
    Decorator: only callers holding one of ``roles`` may proceed.

    Raises PermissionDenied (403) otherwise.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            actor = current_actor()
            if actor.role not in roles:
                logger.warning(
                    "Access denied: role '%s' tried to access %s (allowed: %s)",
                    actor.role, request.path, ", ".join(roles),
                )
                raise PermissionDenied("Insufficient permissions")
            return f(*args, **kwargs)
        return decorated
    return decorator
