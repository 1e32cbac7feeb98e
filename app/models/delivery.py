"""
Risk Governance Platform
Delivery models — notification outbox, email audit trail, submission counters.

Models:
    - NotificationIntent: outbox row written in the same commit as the
      record mutation that caused it; processed after commit
    - EmailLog: outbound email audit trail
    - SubmissionCounter: running champion submissions per (company, module)
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

INTENT_EVENTS = {"submitted", "approved", "rejected", "edited", "milestone"}
INTENT_STATUSES = {"pending", "done", "failed"}
EMAIL_STATUSES = {"queued", "sent", "failed"}


class NotificationIntent(db.Model):
    """
    Pending notification fan-out.

    Recipients are resolved when the intent is processed, not when it is
    written, so the triggering request never waits on fan-out.
    """

    __tablename__ = "notification_intents"

    id = db.Column(db.Integer, primary_key=True)
    event = db.Column(db.String(20), nullable=False)
    record_id = db.Column(db.Integer, db.ForeignKey("records.id", ondelete="SET NULL"), nullable=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
                         comment="Actor whose action triggered the intent")
    company = db.Column(db.String(150), nullable=False)
    department = db.Column(db.String(150), nullable=False)
    module = db.Column(db.String(150), nullable=False, default="")
    payload = db.Column(db.JSON, default=dict)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "event": self.event,
            "record_id": self.record_id,
            "actor_id": self.actor_id,
            "company": self.company,
            "department": self.department,
            "module": self.module,
            "payload": self.payload or {},
            "status": self.status,
            "attempts": self.attempts,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "processed_at": self.processed_at.isoformat() if self.processed_at else None,
        }

    def __repr__(self):
        return f"<NotificationIntent {self.id}: {self.event} [{self.status}]>"


class EmailLog(db.Model):
    """
    Outbound email audit log.

    Every email sent through the platform is logged here for audit/debug.
    """

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(200), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True,
                              comment="Email template used")
    status = db.Column(db.String(20), default="queued",
                       comment="queued, sent, failed")
    error_message = db.Column(db.Text, nullable=True)

    notification_id = db.Column(db.Integer, nullable=True,
                                comment="Related notification ID if applicable")
    intent_id = db.Column(db.Integer, nullable=True, index=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "template_name": self.template_name,
            "status": self.status,
            "error_message": self.error_message,
            "notification_id": self.notification_id,
            "intent_id": self.intent_id,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class SubmissionCounter(db.Model):
    """Monotonic champion submission count, upserted on first use."""

    __tablename__ = "submission_counters"

    id = db.Column(db.Integer, primary_key=True)
    company = db.Column(db.String(150), nullable=False)
    module = db.Column(db.String(150), nullable=False, default="")
    total = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.UniqueConstraint("company", "module", name="uq_submission_counters_company_module"),
    )

    def __repr__(self):
        return f"<SubmissionCounter {self.company}/{self.module}={self.total}>"
