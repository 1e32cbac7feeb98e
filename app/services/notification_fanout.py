"""
Risk Governance Platform
Notification Fan-out — outbox dispatcher for workflow events.

Flow:
    1. The workflow adds a NotificationIntent to the same session as the
       record mutation (enqueue_intent) and commits both together.
    2. After commit it hands the intent ids to dispatch(), which processes
       them inline or on a daemon thread (NOTIFICATION_DISPATCH_MODE).
    3. process_intent() resolves recipients, writes Notification rows,
       sends one email per recipient and marks the intent done/failed.
       A retried intent skips recipients it already notified or mailed.

Audiences:
    submitted                  owner/admin/super-admin in the record's scope
    approved/rejected/edited   the creating champion + super-admins in scope
    milestone                  every owner of the company (email only)

The acting sender is never one of its own recipients. Every failure is
caught and logged here; nothing propagates back to the request that
caused the event.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from app.models import db
from app.models.auth import ROLE_ADMIN, ROLE_CHAMPION, ROLE_OWNER, ROLE_SUPER_ADMIN, User
from app.models.delivery import INTENT_EVENTS, EmailLog, NotificationIntent, SubmissionCounter
from app.models.notification import Notification
from app.models.record import Record
from app.services.email_service import EmailService
from app.services.notification import NotificationService
from app.services.user_service import list_company_members, list_scope_members

logger = logging.getLogger(__name__)

SUBMISSION_AUDIENCE = (ROLE_OWNER, ROLE_ADMIN, ROLE_SUPER_ADMIN)

_EVENT_LABELS = {
    "submitted": "New submission",
    "approved": "Approved",
    "rejected": "Rejected",
    "edited": "Edited",
}


# ═══════════════════════════════════════════════════════════════
# Outbox
# ═══════════════════════════════════════════════════════════════
def enqueue_intent(event: str, record: Record, actor: User | None, payload: dict | None = None) -> NotificationIntent:
    """Add an intent to the current session. The caller commits."""
    if event not in INTENT_EVENTS:
        raise ValueError(f"Unknown notification event: {event}")
    intent = NotificationIntent(
        event=event,
        record_id=record.id,
        actor_id=actor.id if actor else None,
        company=record.company,
        department=record.department,
        module=record.module,
        payload=payload or {},
        status="pending",
        attempts=0,
    )
    db.session.add(intent)
    db.session.flush()
    return intent


def increment_submission_counter(company: str, module: str) -> int:
    """
    Atomically increment the (company, module) counter and return the new total.

    Uses one INSERT … ON CONFLICT DO UPDATE … RETURNING statement where the
    dialect supports it; runs inside the caller's transaction.
    """
    module = module or ""
    now = datetime.now(timezone.utc)
    dialect = db.session.get_bind().dialect.name

    if dialect in ("sqlite", "postgresql"):
        insert = sqlite_insert if dialect == "sqlite" else pg_insert
        stmt = insert(SubmissionCounter).values(company=company, module=module, total=1, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["company", "module"],
            set_={"total": SubmissionCounter.total + 1, "updated_at": stmt.excluded.updated_at},
        ).returning(SubmissionCounter.total)
        return db.session.execute(stmt).scalar_one()

    counter = db.session.execute(
        select(SubmissionCounter)
        .where(SubmissionCounter.company == company, SubmissionCounter.module == module)
        .with_for_update()
    ).scalar_one_or_none()
    if counter is None:
        counter = SubmissionCounter(company=company, module=module, total=0)
        db.session.add(counter)
    counter.total += 1
    db.session.flush()
    return counter.total


# ═══════════════════════════════════════════════════════════════
# Recipients
# ═══════════════════════════════════════════════════════════════
def _without_sender(users, sender_id):
    seen = set()
    result = []
    for user in users:
        if user is None or user.id == sender_id or user.id in seen:
            continue
        seen.add(user.id)
        result.append(user)
    return result


def resolve_creator(record: Record) -> User | None:
    """
    Find the champion who created ``record``.

    ``createdBy`` is free text, so it is matched case-insensitively against
    the email and the name of champions in the record's scope. The record
    owner is used when nothing matches and the owner is such a champion.
    """
    ident = (record.created_by or "").strip().lower()
    champions = list_scope_members(record.company, record.department, record.module, [ROLE_CHAMPION])
    if ident:
        for champion in champions:
            if ident in (champion.email.lower(), champion.name.strip().lower()):
                return champion
    owner = record.owner
    if owner is not None and owner.role == ROLE_CHAMPION and owner.scope == record.scope:
        return owner
    return None


def submission_recipients(record: Record, sender_id: int | None) -> list[User]:
    members = list_scope_members(record.company, record.department, record.module, SUBMISSION_AUDIENCE)
    return _without_sender(members, sender_id)


def decision_recipients(record: Record, sender_id: int | None) -> list[User]:
    """Recipients for approved, rejected and edited events."""
    super_admins = list_scope_members(record.company, record.department, record.module, [ROLE_SUPER_ADMIN])
    return _without_sender([resolve_creator(record), *super_admins], sender_id)


def milestone_recipients(company: str) -> list[User]:
    return list_company_members(company, [ROLE_OWNER])


# ═══════════════════════════════════════════════════════════════
# Messages
# ═══════════════════════════════════════════════════════════════
def build_message(event: str, record: Record, sender_name: str, payload: dict | None = None) -> str:
    payload = payload or {}
    label = record.type_label
    if event == "submitted":
        return f"New {label} submitted by {sender_name}."
    if event == "approved":
        if payload.get("final"):
            return f"{label} {record.data_id} was approved by {sender_name} (final approval)."
        return f"{label} {record.data_id} was approved by {sender_name}."
    if event == "rejected":
        reason = payload.get("reason")
        suffix = f": {reason}" if reason else "."
        return f"{label} {record.data_id} was rejected by {sender_name}{suffix}"
    if event == "edited":
        return f"{label} {record.data_id} was edited by {sender_name}."
    raise ValueError(f"No message for event {event}")


# ═══════════════════════════════════════════════════════════════
# Processing
# ═══════════════════════════════════════════════════════════════
def _notified_recipients(intent_id: int) -> dict[int, int]:
    """recipient id → notification id of inbox rows already written for the intent."""
    rows = db.session.execute(
        select(Notification.recipient_id, Notification.id).where(Notification.intent_id == intent_id)
    ).all()
    return {recipient_id: notif_id for recipient_id, notif_id in rows}


def _mailed_addresses(intent_id: int) -> set[str]:
    return set(db.session.execute(
        select(EmailLog.recipient_email)
        .where(EmailLog.intent_id == intent_id, EmailLog.status == "sent")
    ).scalars())


def _mail_once(intent: NotificationIntent, user: User, mailed: set[str], **kwargs) -> None:
    """
    Send one email unless an earlier attempt of the intent already sent it.

    The log row is committed right after the send, so a failure further
    down the recipient list cannot roll back the record of a delivered mail.
    """
    if user.email in mailed:
        return
    EmailService.send_from_template(to_email=user.email, to_name=user.name, intent_id=intent.id, **kwargs)
    db.session.commit()
    mailed.add(user.email)


def _notify_record_event(intent: NotificationIntent) -> int:
    record = db.session.get(Record, intent.record_id) if intent.record_id else None
    if record is None:
        logger.info("Record gone, nothing to notify", extra={"intent_id": intent.id, "event": intent.event})
        return 0

    sender = db.session.get(User, intent.actor_id) if intent.actor_id else None
    sender_name = sender.name if sender else (intent.payload or {}).get("sender_name", "Unknown")

    if intent.event == "submitted":
        recipients = submission_recipients(record, intent.actor_id)
    else:
        recipients = decision_recipients(record, intent.actor_id)

    message = build_message(intent.event, record, sender_name, intent.payload)
    notified = _notified_recipients(intent.id)
    created = NotificationService.broadcast(
        recipients=[u for u in recipients if u.id not in notified],
        message=message,
        event=intent.event,
        sender_id=intent.actor_id,
        record=record,
        intent_id=intent.id,
    )
    notified.update({n.recipient_id: n.id for n in created})

    mailed = _mailed_addresses(intent.id)
    for user in recipients:
        _mail_once(
            intent, user, mailed,
            template_name="record_notification",
            context={
                "recipient_name": user.name,
                "record_type_label": record.type_label,
                "data_id": record.data_id,
                "event_label": _EVENT_LABELS.get(intent.event, intent.event),
                "message": message,
                "status": record.current_status,
                "company": record.company,
                "department": record.department,
                "module": record.module or "-",
            },
            notification_id=notified.get(user.id),
        )
    return len(recipients)


def _send_milestone(intent: NotificationIntent) -> int:
    payload = intent.payload or {}
    owners = milestone_recipients(intent.company)
    mailed = _mailed_addresses(intent.id)
    for owner in owners:
        _mail_once(
            intent, owner, mailed,
            template_name="submission_milestone",
            context={
                "recipient_name": owner.name,
                "company": intent.company,
                "count": payload.get("count"),
                "module_label": intent.module or "all modules",
            },
        )
    logger.info(
        "Milestone %s reached, %d owner(s) mailed", payload.get("count"), len(owners),
        extra={"intent_id": intent.id, "company": intent.company},
    )
    return len(owners)



_HANDLERS = {
    "submitted": _notify_record_event,
    "approved": _notify_record_event,
    "rejected": _notify_record_event,
    "edited": _notify_record_event,
    "milestone": _send_milestone,
}


def process_intent(intent_id: int) -> NotificationIntent | None:
    """
    Process one intent and commit its outcome.

    Never raises: a failing intent is rolled back and marked ``failed``
    with the error message, so it can be retried from the CLI.
    """
    intent = db.session.get(NotificationIntent, intent_id)
    if intent is None or intent.status == "done":
        return intent

    try:
        delivered = _HANDLERS[intent.event](intent)
        intent.status = "done"
        intent.attempts = (intent.attempts or 0) + 1
        intent.error_message = None
        intent.processed_at = datetime.now(timezone.utc)
        db.session.commit()
        logger.debug(
            "Intent processed, %d recipient(s)", delivered,
            extra={"intent_id": intent_id, "event": intent.event},
        )
    except Exception as exc:
        db.session.rollback()
        logger.exception("Notification intent %s failed", intent_id, extra={"intent_id": intent_id})
        try:
            intent = db.session.get(NotificationIntent, intent_id)
            if intent is not None:
                intent.status = "failed"
                intent.attempts = (intent.attempts or 0) + 1
                intent.error_message = str(exc)[:1000]
                intent.processed_at = datetime.now(timezone.utc)
                db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Could not record failure of intent %s", intent_id)
    return intent


def _process_all(intent_ids) -> None:
    for intent_id in intent_ids:
        process_intent(intent_id)


def _run_in_background(app, intent_ids) -> None:
    with app.app_context():
        try:
            _process_all(intent_ids)
        except Exception:
            logger.exception("Notification dispatch thread failed for intents %s", intent_ids)
        finally:
            db.session.remove()


def dispatch(intent_ids) -> None:
    """
    Process committed intents according to NOTIFICATION_DISPATCH_MODE.

    ``thread`` returns immediately and works on a daemon thread with its own
    app context; ``inline`` works synchronously in the caller's context.
    """
    intent_ids = [i for i in intent_ids if i is not None]
    if not intent_ids:
        return

    mode = current_app.config.get("NOTIFICATION_DISPATCH_MODE", "thread")
    if mode == "inline":
        _process_all(intent_ids)
        return

    app = current_app._get_current_object()
    t = threading.Thread(
        target=_run_in_background,
        args=(app, list(intent_ids)),
        name="notification-dispatch",
        daemon=True,
    )
    t.start()


def dispatch_pending(include_failed: bool = False) -> dict:
    """Synchronously process every pending (and optionally failed) intent."""
    statuses = ["pending", "failed"] if include_failed else ["pending"]
    ids = list(db.session.execute(
        select(NotificationIntent.id)
        .where(NotificationIntent.status.in_(statuses))
        .order_by(NotificationIntent.id)
    ).scalars())
    _process_all(ids)

    done = db.session.execute(
        select(func.count(NotificationIntent.id))
        .where(NotificationIntent.id.in_(ids), NotificationIntent.status == "done")
    ).scalar_one() if ids else 0
    return {"processed": len(ids), "done": done, "failed": len(ids) - done}
