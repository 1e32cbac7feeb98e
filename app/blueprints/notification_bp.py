"""
Risk Governance Platform
Notification Blueprint — the caller's in-app inbox.

  GET    /api/v1/notifications               — List (newest first, ?limit, ?offset, ?unread_only)
  GET    /api/v1/notifications/unread-count  — Unread badge count
  POST   /api/v1/notifications/<id>/read     — Mark one read
  POST   /api/v1/notifications/read-all      — Mark all read
  DELETE /api/v1/notifications/<id>          — Hard delete
  POST   /api/v1/notifications/dispatch      — Re-run pending/failed intents (super-admin)
"""

import logging

from flask import Blueprint

from app.auth import current_actor, require_role
from app.blueprints import flag_arg, limit_offset
from app.models.auth import ROLE_SUPER_ADMIN
from app.services import notification_fanout
from app.services.notification import DEFAULT_LIMIT, MAX_LIMIT, NotificationService
from app.utils.errors import api_ok, register_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")
register_error_handlers(notification_bp)


@notification_bp.route("", methods=["GET"])
def list_notifications():
    actor = current_actor()
    limit, offset = limit_offset(default_limit=DEFAULT_LIMIT, max_limit=MAX_LIMIT)
    items, total = NotificationService.list_for_recipient(
        actor.id, unread_only=flag_arg("unread_only"), limit=limit, offset=offset,
    )
    return api_ok({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(actor.id),
    })


@notification_bp.route("/unread-count", methods=["GET"])
def unread_count():
    return api_ok({"unread_count": NotificationService.unread_count(current_actor().id)})


@notification_bp.route("/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_actor().id)
    return api_ok(notif.to_dict())


@notification_bp.route("/read-all", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_actor().id)
    return api_ok({"marked_read": count})


@notification_bp.route("/<int:notification_id>", methods=["DELETE"])
def delete_notification(notification_id):
    snapshot = NotificationService.delete(notification_id, current_actor().id)
    return api_ok(snapshot)


@notification_bp.route("/dispatch", methods=["POST"])
@require_role(ROLE_SUPER_ADMIN)
def dispatch_pending():
    """Manual retry of the notification outbox."""
    result = notification_fanout.dispatch_pending(include_failed=flag_arg("include_failed"))
    logger.info("Manual dispatch: %s", result)
    return api_ok(result)
