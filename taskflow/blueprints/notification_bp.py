"""
Notification Blueprint: the caller's in-app inbox.

Endpoints:
    GET   /api/v1/notifications                list (?unread_only=true&page=&limit=)
    PATCH /api/v1/notifications/<id>/read      mark one as read (owner only)
    PATCH /api/v1/notifications/read-all       mark every unread one as read
"""

from flask import Blueprint, request

from taskflow.auth import current_user, login_required
from taskflow.services.notification import NotificationService
from taskflow.utils.helpers import api_success, get_pagination

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@login_required
def list_notifications():
    user = current_user()
    unread_only = request.args.get("unread_only", "false").lower() in ("true", "1", "yes")
    page, limit = get_pagination()
    items, total = NotificationService.list_for_user(
        user.id, unread_only=unread_only, limit=limit, offset=(page - 1) * limit,
    )
    return api_success(
        [n.to_dict() for n in items],
        count=len(items),
        total=total,
        unread_count=NotificationService.unread_count(user.id),
        current_page=page,
    )


# Registered before /notifications/<int:notification_id>/read; the literal path wins.
@notification_bp.route("/notifications/read-all", methods=["PATCH"])
@login_required
def mark_all_read():
    count = NotificationService.mark_all_read(current_user().id)
    return api_success({"marked_read": count})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["PATCH"])
@login_required
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_user().id)
    return api_success(notif.to_dict())
