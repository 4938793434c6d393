"""
Taskflow
Notification Service.

Creates inbox entries for task events and serves the per-user inbox
(listing, unread count, read tracking).
"""

from datetime import datetime, timezone

from taskflow.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskflow.models import db
from taskflow.models.notification import (
    NOTIFICATION_TYPES,
    TYPE_COMPLETED,
    TYPE_STAGE_CHANGED,
    TYPE_TASK_ASSIGNED,
    Notification,
)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, message, type=TYPE_TASK_ASSIGNED, task_id=None, metadata=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        return NotificationService.broadcast(
            user_ids=[user_id], message=message, type=type, task_id=task_id, metadata=metadata,
        )[0]

    @staticmethod
    def broadcast(*, user_ids, message, type=TYPE_TASK_ASSIGNED, task_id=None, metadata=None):
        """
        Send the same notification to several recipients in one commit.

        Returns:
            List of created Notification instances.
        """
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Invalid notification type: {type}")
        notifications = []
        for uid in user_ids:
            notif = Notification(
                user_id=uid,
                message=message,
                task_id=task_id,
                type=type,
                meta=dict(metadata or {}),
            )
            db.session.add(notif)
            notifications.append(notif)
        if notifications:
            db.session.commit()
        return notifications

    # ── Task event helpers ────────────────────────────────────────────────

    @staticmethod
    def notify_assigned(task, user_ids, *, initial=False):
        """Tell newly assigned users about a task."""
        if initial:
            message = f'New task assigned: "{task.title}"'
        else:
            message = f'You\'ve been assigned to task: "{task.title}"'
        return NotificationService.broadcast(
            user_ids=user_ids, message=message, type=TYPE_TASK_ASSIGNED, task_id=task.id,
        )

    @staticmethod
    def notify_completed(task):
        """Tell every assignee that a task reached its Done stage."""
        return NotificationService.broadcast(
            user_ids=task.assignee_ids,
            message=f'Task completed: "{task.title}"',
            type=TYPE_COMPLETED,
            task_id=task.id,
        )

    @staticmethod
    def notify_stage_changed(task, stage, actor_id):
        """Tell every assignee except the actor that a task moved."""
        return NotificationService.broadcast(
            user_ids=[uid for uid in task.assignee_ids if uid != actor_id],
            message=f'Task "{task.title}" moved to {stage.name}',
            type=TYPE_STAGE_CHANGED,
            task_id=task.id,
            metadata={"stage_id": stage.id, "stage_name": stage.name},
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """
        Retrieve notifications for a user, newest first.
        """
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        """Return count of unread notifications."""
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark one of the user's notifications as read."""
        notif = db.session.get(Notification, notification_id)
        if not notif:
            raise NotFoundError("Notification", notification_id)
        if notif.user_id != user_id:
            raise ForbiddenError("Not authorized to update this notification")
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all of a user's notifications as read."""
        now = datetime.now(timezone.utc)
        count = (
            Notification.query.filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count
