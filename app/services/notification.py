"""
Risk Governance Platform
Notification Service.

Creates inbox entries for workflow fan-out and serves the recipient's inbox.
Mark-read and hard delete are the only mutations after creation.
"""

from datetime import datetime, timezone

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.notification import Notification

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def broadcast(*, recipients, message, event="", sender_id=None, record=None, intent_id=None):
        """
        Create one notification per recipient actor.

        The caller owns the transaction; rows are flushed so their ids can
        be attached to email logs, but nothing is committed here.

        Returns:
            List of created Notification instances.
        """
        notifications = []
        for user in recipients:
            notif = Notification(
                recipient_id=user.id,
                sender_id=sender_id,
                message=message,
                for_role=user.role,
                event=event,
                company=record.company if record else user.company,
                department=record.department if record else user.department,
                module=record.module if record else user.module,
                record_id=record.id if record else None,
                record_type=record.record_type if record else "",
                intent_id=intent_id,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.flush()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_id, unread_only=False, limit=DEFAULT_LIMIT, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        limit = max(1, min(int(limit or DEFAULT_LIMIT), MAX_LIMIT))
        q = Notification.query.filter_by(recipient_id=recipient_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(max(0, int(offset or 0)))
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_id):
        return Notification.query.filter_by(recipient_id=recipient_id, is_read=False).count()

    @staticmethod
    def get_for_recipient(notification_id, recipient_id):
        notif = db.session.get(Notification, notification_id)
        if notif is None or notif.recipient_id != recipient_id:
            raise NotFoundError("Notification", notification_id)
        return notif

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, recipient_id):
        """Mark a single notification as read."""
        notif = NotificationService.get_for_recipient(notification_id, recipient_id)
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(recipient_id):
        """Mark all notifications for a recipient as read. Returns the count."""
        q = Notification.query.filter_by(recipient_id=recipient_id, is_read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count

    @staticmethod
    def delete(notification_id, recipient_id):
        """Hard delete. Returns the deleted notification's snapshot."""
        notif = NotificationService.get_for_recipient(notification_id, recipient_id)
        snapshot = notif.to_dict()
        db.session.delete(notif)
        db.session.commit()
        return snapshot
