"""
Risk Governance Platform
Notification domain model.

Models:
    - Notification: in-app inbox entry with read tracking

Notifications are only ever created as a side effect of a record being
submitted or transitioned. Mark-read and hard delete are the only
mutations the inbox allows.
"""

from datetime import datetime, timezone

from app.models import db


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    sender_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    message = db.Column(db.Text, nullable=False)
    for_role = db.Column(db.String(20), nullable=False, comment="Role of the recipient at send time")
    event = db.Column(db.String(20), default="", comment="submitted/approved/rejected/edited")

    # Tenancy scope of the triggering record
    company = db.Column(db.String(150))
    department = db.Column(db.String(150))
    module = db.Column(db.String(150))

    # Link to source record
    record_id = db.Column(db.Integer, db.ForeignKey("records.id", ondelete="SET NULL"), nullable=True)
    record_type = db.Column(db.String(40), default="")
    intent_id = db.Column(db.Integer, nullable=True, index=True,
                          comment="NotificationIntent that produced this entry")

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True)

    recipient = db.relationship("User", foreign_keys=[recipient_id])
    sender = db.relationship("User", foreign_keys=[sender_id])

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    @property
    def created_at_formatted(self):
        """DD/MM/YY HH:MM:SS, as shown in the inbox."""
        if not self.created_at:
            return None
        return self.created_at.strftime("%d/%m/%y %H:%M:%S")

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient_id,
            "sender": self.sender.to_summary() if self.sender else None,
            "message": self.message,
            "forRole": self.for_role,
            "event": self.event,
            "company": self.company,
            "department": self.department,
            "module": self.module,
            "recordId": self.record_id,
            "recordType": self.record_type,
            "isRead": self.is_read,
            "readAt": self.read_at.isoformat() if self.read_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "createdAtFormatted": self.created_at_formatted,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.message[:40]}>"
