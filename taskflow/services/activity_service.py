"""
Activity log service: append-only task history.
"""

from taskflow.models import db
from taskflow.models.activity import ACTIVITY_ACTIONS, ActivityLog

RECENT_ACTIVITY_LIMIT = 20


def log_activity(task_id: int, user_id: int, action: str, details: dict | None = None) -> ActivityLog:
    """Append and commit one activity row."""
    if action not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown activity action: {action}")
    log = ActivityLog(task_id=task_id, user_id=user_id, action=action, details=dict(details or {}))
    db.session.add(log)
    db.session.commit()
    return log


def list_for_task(task_id: int, limit: int = RECENT_ACTIVITY_LIMIT) -> list[ActivityLog]:
    """Most recent activity first."""
    return (
        ActivityLog.query.filter_by(task_id=task_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )


def delete_for_task(task_id: int) -> int:
    """Remove every activity row of a task. Caller owns the commit."""
    return ActivityLog.query.filter_by(task_id=task_id).delete(synchronize_session=False)
