"""
Auth Models — actors (users) and their tenancy scope.

An actor's role plus (company, department, module) is its *tenancy scope*.
Every visibility and routing decision in the platform is made against that
scope; nothing here is shared across companies.
"""

from datetime import datetime, timezone

from app.models import db


# ── Roles ────────────────────────────────────────────────────────────────────

ROLE_CHAMPION = "champion"
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super-admin"

ROLES = (ROLE_CHAMPION, ROLE_OWNER, ROLE_ADMIN, ROLE_SUPER_ADMIN)

# Roles with approval authority, lowest first
APPROVER_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN, ROLE_SUPER_ADMIN})

_ROLE_ALIASES = {
    "super_admin": ROLE_SUPER_ADMIN,
    "superadmin": ROLE_SUPER_ADMIN,
    "super admin": ROLE_SUPER_ADMIN,
    "chamption": ROLE_CHAMPION,
}


def normalize_role(raw):
    """Return the canonical role name for ``raw`` or None if unknown."""
    if not raw:
        return None
    role = str(raw).strip().lower()
    role = _ROLE_ALIASES.get(role, role)
    return role if role in ROLES else None


class User(db.Model):
    """Platform actor. Email is unique and stored lower-cased."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(20), nullable=False, default=ROLE_CHAMPION, index=True)
    company = db.Column(db.String(150), nullable=False, index=True)
    department = db.Column(db.String(150), nullable=False)
    module = db.Column(db.String(150), nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.Index("ix_users_scope_role", "company", "department", "module", "role"),
    )

    @property
    def scope(self):
        return (self.company, self.department, self.module)

    @property
    def is_approver(self):
        return self.role in APPROVER_ROLES

    def shares_scope(self, company, department, module):
        return self.scope == (company, department, module)

    def to_summary(self):
        return {"id": self.id, "name": self.name, "email": self.email}

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "company": self.company,
            "department": self.department,
            "module": self.module,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
