"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.jwt_*.

Every /api/v1/* route requires ``Authorization: Bearer <token>`` except the
account endpoints listed in JWT_SKIP_PREFIXES and the health check.

  missing token          → 401 "Access denied. No token provided."
  invalid/expired token  → 403 "Invalid or expired token."

On success the decoded claims are exposed as:
  g.jwt_user_id, g.jwt_role, g.jwt_company, g.jwt_department,
  g.jwt_module, g.jwt_claims
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import actor_id_from_claims, decode_access_token
from app.utils.errors import api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/auth/forgot-password",
    "/api/v1/health",
)


def _clear_context():
    g.jwt_user_id = None
    g.jwt_role = None
    g.jwt_company = None
    g.jwt_department = None
    g.jwt_module = None
    g.jwt_claims = {}
    g.pop("current_actor", None)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        _clear_context()

        path = request.path
        if not path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        token = auth_header[7:].strip() if auth_header.startswith("Bearer ") else ""
        if not token:
            return api_error("Access denied. No token provided.", status=401)

        try:
            payload = decode_access_token(token)
            g.jwt_user_id = actor_id_from_claims(payload)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired token on %s", path)
            return api_error("Invalid or expired token.", status=403)
        except pyjwt.InvalidTokenError as exc:
            logger.warning("Invalid token on %s: %s", path, exc)
            return api_error("Invalid or expired token.", status=403)

        g.jwt_role = payload.get("role")
        g.jwt_company = payload.get("company")
        g.jwt_department = payload.get("department")
        g.jwt_module = payload.get("module")
        g.jwt_claims = payload
        return None
