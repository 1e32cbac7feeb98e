"""
Visibility / authorization filter.

Role-scoped query shaping for governance records:

  champion                    → only records it owns
  owner / admin / super-admin → every record in its exact
                                (company, department, module) scope

No role ever sees across tenancy scopes. A record outside the caller's
visibility is reported as NotFoundError, the same as a missing one.
"""

from app.core.exceptions import NotFoundError
from app.models.auth import ROLE_CHAMPION, User
from app.services import record_store
from app.services.record_store import RecordFilter


def scoped_filter(actor: User) -> RecordFilter:
    """Return the RecordFilter describing everything ``actor`` may read."""
    if actor.role == ROLE_CHAMPION:
        return RecordFilter(
            company=actor.company,
            department=actor.department,
            module=actor.module,
            owner_id=actor.id,
        )
    return RecordFilter(
        company=actor.company,
        department=actor.department,
        module=actor.module,
    )


def can_see(actor: User, record) -> bool:
    if record.scope != actor.scope:
        return False
    if actor.role == ROLE_CHAMPION:
        return record.owner_id == actor.id
    return True


def get_visible_record(actor: User, record_id: int):
    """Fetch a record the actor may see, or raise NotFoundError."""
    record = record_store.get_record(record_id)
    if not can_see(actor, record):
        raise NotFoundError("Record", record_id)
    return record


def visible_records(actor: User, record_type: str | None = None) -> list:
    return record_store.query_by_scope(scoped_filter(actor).for_type(record_type))


def can_view_actor(caller: User, target: User) -> bool:
    """A caller may list another actor's records only inside its own scope.

    Champions may only look at themselves.
    """
    if caller.id == target.id:
        return True
    if caller.role == ROLE_CHAMPION:
        return False
    return caller.scope == target.scope
