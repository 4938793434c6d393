"""
Notification domain model.

Models:
    - Notification: in-app inbox entry with read tracking, one row per recipient per event
"""

from datetime import datetime, timezone

from taskflow.models import _utcnow, db

TYPE_TASK_ASSIGNED = "task_assigned"
TYPE_STAGE_CHANGED = "stage_changed"
TYPE_DUE_DATE = "due_date"
TYPE_COMPLETED = "completed"
TYPE_MENTION = "mention"

NOTIFICATION_TYPES = {TYPE_TASK_ASSIGNED, TYPE_STAGE_CHANGED, TYPE_DUE_DATE, TYPE_COMPLETED, TYPE_MENTION}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    message = db.Column(db.Text, nullable=False)
    # Plain reference: notifications survive task deletion.
    task_id = db.Column(db.Integer, nullable=True, index=True)
    type = db.Column(db.String(30), nullable=False, default=TYPE_TASK_ASSIGNED, index=True)

    # ``metadata`` is reserved on declarative classes.
    meta = db.Column("metadata", db.JSON, default=dict)

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "message": self.message,
            "task_id": self.task_id,
            "type": self.type,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "metadata": self.meta or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type} -> user {self.user_id}>"
