"""
Deal Room Diligence
Notification inbox blueprint.

Provides:
    - GET  /api/v1/notifications                  ?unread_only=&limit=&offset=
    - GET  /api/v1/notifications/unread-count
    - POST /api/v1/notifications/<id>/read
    - POST /api/v1/notifications/read-all

Notifications are written only by the fan-out engine; this blueprint reads
them and flips read state. Every route is scoped to the X-User caller.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from dealroom.blueprints import current_actor, paginate_query
from dealroom.core.exceptions import NotFoundError
from dealroom.services.notification import NotificationService
from dealroom.utils.errors import E, api_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


@notification_bp.errorhandler(NotFoundError)
def _handle_not_found(error: NotFoundError):
    return api_error(E.NOT_FOUND, str(error))


@notification_bp.before_request
def _require_user():
    if not current_actor():
        return api_error(E.VALIDATION_REQUIRED, "X-User header is required")
    return None


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """List the caller's notifications, newest first."""
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    q = NotificationService.inbox_query(current_actor(), unread_only=unread_only)
    items, total = paginate_query(q)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(current_actor()),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_actor())})


@notification_bp.route("/notifications/<notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_actor())
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_actor())
    return jsonify({"marked_read": count})
