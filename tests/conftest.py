"""
Shared pytest fixtures for the Risk Governance Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: actor factory (defaults to the Acme / IT / Safety scope)
    - champion, owner, admin, super_admin: one actor per role in that scope
    - auth_headers: bearer header builder for an actor
    - submit: submits a Risk Assessment through the workflow service
    - submit_body: request body builder for the submit-record endpoint
"""

import itertools

import pytest

from app import create_app
from app.models import db as _db
from app.models.auth import User
from app.models.record import RECORD_TYPE_RISK
from app.services.jwt_service import generate_access_token
from app.utils.crypto import hash_password

ACME_SCOPE = {"company": "Acme", "department": "IT", "module": "Safety"}
DEFAULT_PASSWORD = "S3cret-pass"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Actors ───────────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: make_user("owner", department="HR") → committed User."""
    seq = itertools.count(1)

    def _make(role="champion", *, name=None, email=None, password=DEFAULT_PASSWORD, **scope):
        n = next(seq)
        values = {**ACME_SCOPE, **scope}
        user = User(
            name=name or f"{role.replace('-', ' ').title()} {n}",
            email=email or f"{role.replace('-', '')}{n}@{values['company'].lower()}.test",
            password_hash=hash_password(password),
            role=role,
            **values,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def champion(make_user):
    return make_user("champion", name="Carla Champion", email="carla@acme.test")


@pytest.fixture()
def owner(make_user):
    return make_user("owner", name="Oscar Owner", email="oscar@acme.test")


@pytest.fixture()
def admin(make_user):
    return make_user("admin", name="Ada Admin", email="ada@acme.test")


@pytest.fixture()
def super_admin(make_user):
    return make_user("super-admin", name="Sam Super", email="sam@acme.test")


@pytest.fixture()
def auth_headers():
    """auth_headers(user) → {"Authorization": "Bearer <token>"}"""

    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user)}"}

    return _headers


# ── Records ──────────────────────────────────────────────────────────────


@pytest.fixture()
def submit():
    """submit(actor, fields=None, **body) → Record created via the workflow."""
    from app.services.record_workflow import submit_record

    def _submit(actor, fields=None, record_type=RECORD_TYPE_RISK, **extra):
        body = {
            "company": actor.company,
            "department": actor.department,
            "module": actor.module,
            "fields": fields or {"risks": "Fire", "likelihood": 3},
            "createdBy": actor.email,
            "actorId": actor.id,
            **extra,
        }
        return submit_record(actor, record_type, body)

    return _submit


@pytest.fixture()
def submit_body():
    """submit_body(actor, **overrides) → body for POST /records/<type>/submit-record."""

    def _body(actor, **overrides):
        body = {
            "company": actor.company,
            "department": actor.department,
            "module": actor.module,
            "fields": {"risks": "Fire", "likelihood": 3},
            "createdBy": actor.email,
            "actorId": actor.id,
        }
        body.update(overrides)
        return body

    return _body
