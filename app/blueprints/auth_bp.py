"""
Auth Blueprint — account endpoints.

  POST /api/v1/auth/register         — Provision an actor
  POST /api/v1/auth/login            — Email + password (+ optional scope) → JWT
  PUT  /api/v1/auth/forgot-password  — Replace the password for an email
  GET  /api/v1/auth/me               — Current actor profile
"""

from flask import Blueprint

from app.auth import current_actor
from app.blueprints import json_body
from app.services.user_service import authenticate, create_user, reset_password
from app.utils.errors import api_ok, register_error_handlers

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")
register_error_handlers(auth_bp)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: { "name", "email", "password", "role", "company", "department", "module" }
    """
    data = json_body()
    user = create_user(
        name=data.get("name", ""),
        email=data.get("email", ""),
        password=data.get("password", ""),
        role=data.get("role", ""),
        company=data.get("company", ""),
        department=data.get("department", ""),
        module=data.get("module", ""),
    )
    return api_ok(user.to_dict(), status=201, message="User registered successfully")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "email", "password", "role"?, "company"?, "department"?, "module"? }
    """
    data = json_body()
    user, token = authenticate(
        email=data.get("email", ""),
        password=data.get("password", ""),
        role=data.get("role"),
        company=data.get("company"),
        department=data.get("department"),
        module=data.get("module"),
    )
    return api_ok({"token": token, "user": user.to_dict()})


# ═══════════════════════════════════════════════════════════════
# PUT /api/v1/auth/forgot-password
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/forgot-password", methods=["PUT"])
def forgot_password():
    data = json_body()
    user = reset_password(data.get("email", ""), data.get("password", ""))
    return api_ok({"id": user.id}, message=f"Password updated for {user.email}")


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    return api_ok(current_actor().to_dict())
