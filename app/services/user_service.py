"""
User Service — account provisioning, login, password reset, scope lookups.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.auth import User, normalize_role
from app.services.jwt_service import generate_access_token
from app.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Validate and lower-case an email address. Raises ValidationError."""
    try:
        valid = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": str(e)})
    return valid.normalized.lower()


# ═══════════════════════════════════════════════════════════════
# Provisioning
# ═══════════════════════════════════════════════════════════════
def create_user(
    *,
    name: str,
    email: str,
    password: str,
    role: str,
    company: str,
    department: str,
    module: str = "",
) -> User:
    """Create a new actor. Email is unique across the platform."""
    missing = [k for k, v in (("name", name), ("email", email), ("password", password),
                              ("role", role), ("company", company), ("department", department)) if not v]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={k: "required" for k in missing},
        )

    canonical_role = normalize_role(role)
    if canonical_role is None:
        raise ValidationError(f"Unknown role: {role}", details={"role": "invalid"})

    email = normalize_email(email)
    if User.query.filter_by(email=email).first():
        raise ConflictError("User", "email", email)

    user = User(
        name=name.strip(),
        email=email,
        password_hash=hash_password(password),
        role=canonical_role,
        company=company.strip(),
        department=department.strip(),
        module=(module or "").strip(),
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User created id=%s role=%s", user.id, user.role, extra={"company": user.company})
    return user


def authenticate(
    *,
    email: str,
    password: str,
    role: str | None = None,
    company: str | None = None,
    department: str | None = None,
    module: str | None = None,
) -> tuple[User, str]:
    """
    Verify credentials and issue an access token.

    Optional scope arguments narrow the lookup exactly as the login form
    does (the actor must hold that role in that scope).

    Raises:
        NotFoundError:       no actor matches
        AuthenticationError: password mismatch (401)
    """
    if not email or not password:
        raise ValidationError("email and password are required")

    stmt = select(User).where(User.email == (email or "").strip().lower())
    role_filter = normalize_role(role) if role else None
    if role and role_filter is None:
        raise NotFoundError("User")
    if role_filter:
        stmt = stmt.where(User.role == role_filter)
    if company:
        stmt = stmt.where(User.company == company)
    if department:
        stmt = stmt.where(User.department == department)
    if module is not None and module != "":
        stmt = stmt.where(User.module == module)

    user = db.session.execute(stmt).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User")
    if not verify_password(password, user.password_hash):
        logger.warning("Invalid credentials for user id=%s", user.id)
        raise AuthenticationError("Invalid credentials", status=401)

    return user, generate_access_token(user)


def reset_password(email: str, password: str) -> User:
    """Replace the password of the account registered under ``email``."""
    if not email or not password:
        raise ValidationError("email and password are required")
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None:
        raise NotFoundError("User")
    user.password_hash = hash_password(password)
    db.session.commit()
    logger.info("Password reset for user id=%s", user.id)
    return user


# ═══════════════════════════════════════════════════════════════
# Lookups
# ═══════════════════════════════════════════════════════════════
def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


def list_scope_members(company: str, department: str, module: str, roles) -> list[User]:
    """Actors sharing the exact tenancy scope and holding one of ``roles``."""
    stmt = (
        select(User)
        .where(
            User.company == company,
            User.department == department,
            User.module == module,
            User.role.in_(list(roles)),
        )
        .order_by(User.id)
    )
    return list(db.session.execute(stmt).scalars())


def list_company_members(company: str, roles) -> list[User]:
    """Actors of ``company`` (any department/module) holding one of ``roles``."""
    stmt = (
        select(User)
        .where(User.company == company, User.role.in_(list(roles)))
        .order_by(User.id)
    )
    return list(db.session.execute(stmt).scalars())
