"""
Activity log model: append-only history of task events.

Rows are never updated; they are removed in bulk only together with their task.
"""

from taskflow.models import _utcnow, db

ACTION_TASK_CREATED = "TASK_CREATED"
ACTION_STAGE_CHANGED = "STAGE_CHANGED"
ACTION_TASK_UPDATED = "TASK_UPDATED"

ACTIVITY_ACTIONS = {ACTION_TASK_CREATED, ACTION_STAGE_CHANGED, ACTION_TASK_UPDATED}


class ActivityLog(db.Model):
    __tablename__ = "activity_logs"

    id = db.Column(db.Integer, primary_key=True)
    # No FK on task_id: delete_task removes the logs before the task row.
    task_id = db.Column(db.Integer, nullable=False, index=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    action = db.Column(db.String(30), nullable=False, index=True)
    details = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.Index("ix_activity_logs_task_created", "task_id", "created_at"),
    )

    user = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "user": self.user.to_summary() if self.user else None,
            "action": self.action,
            "details": self.details or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ActivityLog {self.id}: {self.action} task={self.task_id}>"
