"""
Record Workflow Service — submission and the approval state machine.

Statuses (RecordStatus):
    Draft → Pending for Owner Approval → Pending for Final Approval → Approved
                                    └───────────┴──────────────→ Rejected

Commands:
    SetFields   edit field values (champion / owner / super-admin)
    Approve     owner/admin: first-level approval, sets approvedBy
                super-admin: final approval, sets finalApprovedBy
    Reject      owner / admin / super-admin, optional reason
    AddComment  append to one field's thread, any actor who can see the record
    Resubmit    champion moves its own Draft into the approval queue
    NoOp        legacy update body with no recognised keys

Approve and Reject may carry the SetFields of the same legacy body; the
edit is applied in the same commit and only the decision is notified.
lastEditedBy is always stamped with the acting user's own email.

Every state change and its NotificationIntent are committed together;
dispatch runs after the commit and never affects the result.

Usage:
    from app.services.record_workflow import Approve, apply_command

    record = apply_command(record_id, actor, Approve())
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from app.core.exceptions import NotFoundError, PermissionDenied, TransitionError, ValidationError
from app.models import db
from app.models.auth import ROLE_ADMIN, ROLE_CHAMPION, ROLE_OWNER, ROLE_SUPER_ADMIN, User
from app.models.record import (
    RECORD_TRANSITIONS,
    Record,
    RecordStatus,
    is_rejection_status,
    parse_status,
)
from app.services import comment_service, notification_fanout, record_store
from app.services.user_service import get_user
from app.services.visibility import can_view_actor, get_visible_record, visible_records

logger = logging.getLogger(__name__)

EDITOR_ROLES = frozenset({ROLE_CHAMPION, ROLE_OWNER, ROLE_SUPER_ADMIN})
DECISION_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN, ROLE_SUPER_ADMIN})

SUBMIT_REQUIRED = ("company", "department", "module", "fields", "createdBy", "actorId")


# ── Commands ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SetFields:
    values: dict = field(default_factory=dict)
    stamp_editor: bool = False


@dataclass(frozen=True)
class Approve:
    approver: str | None = None
    edits: SetFields | None = None


@dataclass(frozen=True)
class Reject:
    reason: str | None = None
    edits: SetFields | None = None


@dataclass(frozen=True)
class AddComment:
    field_name: str
    text: str


@dataclass(frozen=True)
class Resubmit:
    pass


@dataclass(frozen=True)
class NoOp:
    pass


COMMAND_TYPES = {
    "SetFields": SetFields,
    "Approve": Approve,
    "Reject": Reject,
    "AddComment": AddComment,
    "Resubmit": Resubmit,
}


def command_from_json(body: dict):
    """
    Build a command from ``{"type": "<Command>", ...}``.

    Keys are the camelCase wire names: SetFields{values, stampEditor},
    Approve{approver}, Reject{reason}, AddComment{fieldName, text}.
    """
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    kind = body.get("type")
    if kind not in COMMAND_TYPES:
        raise ValidationError(
            f"Unknown command type: {kind!r}",
            details={"type": sorted(COMMAND_TYPES)},
        )
    if kind == "SetFields":
        values = body.get("values")
        if not isinstance(values, dict) or not values:
            raise ValidationError("values must be a non-empty object", details={"values": "required"})
        return SetFields(values=values, stamp_editor=bool(body.get("stampEditor")))
    if kind == "Approve":
        return Approve(approver=body.get("approver"))
    if kind == "Reject":
        return Reject(reason=body.get("reason"))
    if kind == "AddComment":
        return AddComment(field_name=body.get("fieldName"), text=body.get("text"))
    return Resubmit()


def _names_editor(raw) -> bool:
    if isinstance(raw, dict):
        raw = raw.get("email")
    return isinstance(raw, str) and bool(raw.strip())


def _legacy_edits(body: dict) -> SetFields | None:
    values = body.get("fields")
    if values is None:
        values = body.get("formData")
    if isinstance(values, dict) and values:
        return SetFields(values=values, stamp_editor=_names_editor(body.get("lastEditedBy")))
    return None


def command_from_payload(body: dict):
    """
    Translate a legacy partial update body into one command.

    Priority: approval keys, then a status text containing "reject", then
    field values. The priority only picks the command and its notification;
    field values present next to an approval or rejection travel with it
    as ``edits``. A body matching none of these becomes NoOp.
    """
    body = body if isinstance(body, dict) else {}
    edits = _legacy_edits(body)

    approver = body.get("finalApprovedBy") or body.get("approvedBy")
    if approver:
        return Approve(approver=str(approver), edits=edits)

    if is_rejection_status(body.get("currentStatus")):
        return Reject(reason=body.get("rejectionReason"), edits=edits)

    return edits or NoOp()


# ── Helpers ──────────────────────────────────────────────────────────────────

def _require_transition(record: Record, action: str) -> str:
    rule = RECORD_TRANSITIONS[action]
    if record.current_status not in rule["from"]:
        raise TransitionError(action, record.current_status,
                              f"allowed from {', '.join(rule['from'])}")
    return rule["to"]


def _require_role(actor: User, roles, action: str) -> None:
    if actor.role not in roles:
        logger.warning("Role '%s' may not %s", actor.role, action, extra={"actor_id": actor.id})
        raise PermissionDenied(f"Role '{actor.role}' may not {action} records")


def edit_stamp(email: str, now: datetime | None = None) -> dict:
    """lastEditedBy value: editor email plus local date and time."""
    now = now or datetime.now()
    return {"email": email, "date": now.strftime("%d/%m/%Y"), "time": now.strftime("%H:%M:%S")}


def _count_submission(record: Record, actor: User) -> list:
    """Bump the champion counter; returns a milestone intent when one is due."""
    if actor.role != ROLE_CHAMPION:
        return []
    total = notification_fanout.increment_submission_counter(record.company, record.module)
    interval = current_app.config.get("SUBMISSION_MILESTONE_INTERVAL", 10)
    if interval and total > 0 and total % interval == 0:
        return [notification_fanout.enqueue_intent("milestone", record, actor, {"count": total})]
    return []


def _commit_and_dispatch(intents) -> None:
    ids = [i.id for i in intents]
    db.session.commit()
    notification_fanout.dispatch(ids)


# ═══════════════════════════════════════════════════════════════
# Submission
# ═══════════════════════════════════════════════════════════════
def submit_record(actor: User, record_type: str, body: dict) -> Record:
    """
    Create a record for ``actor`` in its own tenancy scope.

    Body keys: company, department, module, fields, createdBy, actorId
    (all required) and optionally currentStatus ("Draft" keeps the record
    out of the approval queue).

    Raises:
        ValidationError: missing keys or an unsupported initial status
        PermissionDenied: actorId names someone other than the caller
    """
    body = body if isinstance(body, dict) else {}
    if body.get("fields") is None and body.get("formData") is not None:
        body = {**body, "fields": body["formData"]}

    missing = [k for k in SUBMIT_REQUIRED if body.get(k) in (None, "", {}, [])]
    if missing:
        raise ValidationError(
            "Missing required fields",
            details={k: "required" for k in missing},
        )

    try:
        actor_id = int(body["actorId"])
    except (TypeError, ValueError):
        raise ValidationError("actorId must be an integer", details={"actorId": "invalid"})
    if actor_id != actor.id:
        raise PermissionDenied("Records can only be submitted for the authenticated actor")

    requested = body.get("currentStatus")
    status = parse_status(requested) if requested else RecordStatus.PENDING_OWNER
    if status not in (RecordStatus.DRAFT, RecordStatus.PENDING_OWNER):
        raise ValidationError(
            f"A new record cannot start in status {requested!r}",
            details={"currentStatus": "invalid"},
        )

    record = record_store.create_record(
        record_type=record_type,
        company=actor.company,
        department=actor.department,
        module=actor.module,
        owner_id=actor.id,
        created_by=str(body["createdBy"]).strip(),
        fields=body["fields"],
        status=status,
        commit=False,
    )

    intents = []
    if status == RecordStatus.PENDING_OWNER:
        intents.append(notification_fanout.enqueue_intent("submitted", record, actor))
        intents.extend(_count_submission(record, actor))

    _commit_and_dispatch(intents)
    logger.info(
        "Record submitted status=%s", status,
        extra={"record_id": record.id, "actor_id": actor.id, "company": record.company},
    )
    return record


# ═══════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════
def _apply_edits(record: Record, actor: User, cmd: SetFields) -> list[str]:
    """Write field values and the edit stamp; returns the names that changed."""
    _require_role(actor, EDITOR_ROLES, "edit")
    if record.current_status not in RecordStatus.EDITABLE:
        raise TransitionError("edit", record.current_status, "record is closed")
    if not isinstance(cmd.values, dict) or not cmd.values:
        raise ValidationError("values must be a non-empty object", details={"values": "required"})

    _, changed = record_store.update_fields(record.id, {"fields": cmd.values}, commit=False)
    if changed and cmd.stamp_editor:
        record_store.update_fields(
            record.id, {"last_edited_by": edit_stamp(actor.email)}, commit=False,
        )
    return changed


def _set_fields(record: Record, actor: User, cmd: SetFields) -> list:
    changed = _apply_edits(record, actor, cmd)
    if not changed:
        return []
    return [notification_fanout.enqueue_intent("edited", record, actor, {"fields": changed})]


def _approve(record: Record, actor: User, cmd: Approve) -> list:
    _require_role(actor, DECISION_ROLES, "approve")
    approver = (cmd.approver or "").strip() or actor.name

    if actor.role == ROLE_SUPER_ADMIN:
        to = _require_transition(record, "final_approve")
        patch = {"current_status": to, "final_approved_by": approver}
        if not record.approved_by:
            patch["approved_by"] = approver
        final = True
    else:
        to = _require_transition(record, "approve")
        patch = {"current_status": to, "approved_by": approver}
        final = False

    if cmd.edits is not None:
        _apply_edits(record, actor, cmd.edits)
    record_store.update_fields(record.id, patch, commit=False)
    return [notification_fanout.enqueue_intent("approved", record, actor, {"final": final})]


def _reject(record: Record, actor: User, cmd: Reject) -> list:
    _require_role(actor, DECISION_ROLES, "reject")
    to = _require_transition(record, "reject")
    reason = (cmd.reason or "").strip() or None
    if cmd.edits is not None:
        _apply_edits(record, actor, cmd.edits)
    record_store.update_fields(
        record.id, {"current_status": to, "rejection_reason": reason}, commit=False,
    )
    return [notification_fanout.enqueue_intent("rejected", record, actor, {"reason": reason})]


def _add_comment(record: Record, actor: User, cmd: AddComment) -> list:
    comment_service.add_field_comment(record.id, cmd.field_name, cmd.text, actor)
    return []


def _resubmit(record: Record, actor: User, cmd: Resubmit) -> list:
    if actor.role != ROLE_CHAMPION or record.owner_id != actor.id:
        raise PermissionDenied("Only the owning champion may resubmit a record")
    to = _require_transition(record, "submit")
    record_store.update_fields(record.id, {"current_status": to}, commit=False)
    return [
        notification_fanout.enqueue_intent("submitted", record, actor),
        *_count_submission(record, actor),
    ]


_COMMAND_HANDLERS = {
    SetFields: _set_fields,
    Approve: _approve,
    Reject: _reject,
    AddComment: _add_comment,
    Resubmit: _resubmit,
    NoOp: lambda record, actor, cmd: [],
}


def apply_command(record_id: int, actor: User, command) -> Record:
    """
    Run one command against a record visible to ``actor``.

    Raises:
        NotFoundError: record absent or outside the actor's visibility
        PermissionDenied: the actor's role may not run this command
        TransitionError: the command is not allowed from the current status
        ValidationError: malformed command
    """
    handler = _COMMAND_HANDLERS.get(type(command))
    if handler is None:
        raise ValidationError(f"Unsupported command: {type(command).__name__}")

    record = get_visible_record(actor, record_id)
    intents = handler(record, actor, command)
    _commit_and_dispatch(intents)

    if intents:
        logger.info(
            "Command %s applied, status=%s", type(command).__name__, record.current_status,
            extra={"record_id": record_id, "actor_id": actor.id},
        )
    return record


# ═══════════════════════════════════════════════════════════════
# Reads / delete
# ═══════════════════════════════════════════════════════════════
def delete_record_for(actor: User, record_id: int) -> dict:
    get_visible_record(actor, record_id)
    return record_store.delete_record(record_id)


def records_for_actor(caller: User, actor_id: int, record_type: str | None = None) -> list[Record]:
    """
    Role-scoped record list of ``actor_id``.

    The target must be the caller or share the caller's scope; anything
    else is reported as an unknown actor.
    """
    target = get_user(actor_id)
    if not can_view_actor(caller, target):
        raise NotFoundError("User", actor_id)
    return visible_records(target, record_type)
