"""
Task analytics: read-only rollups over a filtered task set.

The matching tasks are loaded with one query and every rollup is computed
from that list, so all five figures describe the same snapshot.
"""

from collections import Counter
from datetime import datetime, timezone

from taskflow.models import db
from taskflow.models.task import Task
from taskflow.models.user import User
from taskflow.models.workflow import WorkflowStage
from taskflow.utils.helpers import as_utc

SECONDS_PER_DAY = 60 * 60 * 24


def _filtered_tasks(identity, project_id=None, start_date=None, end_date=None):
    q = Task.query
    if not identity.is_privileged:
        q = q.filter(Task.assignees.any(User.id == identity.id))
    if project_id:
        q = q.filter(Task.project_id == project_id)
    if start_date:
        q = q.filter(Task.created_at >= start_date)
    if end_date:
        q = q.filter(Task.created_at <= end_date)
    return q.all()


def _stage_names(stage_ids):
    if not stage_ids:
        return {}
    rows = db.session.query(WorkflowStage.id, WorkflowStage.name).filter(
        WorkflowStage.id.in_(stage_ids)
    ).all()
    return dict(rows)


def task_overview(identity, project_id=None, start_date=None, end_date=None, now=None):
    """
    Compute stage, priority and completion counts, the overdue count and the
    mean days to completion for the tasks ``identity`` may see.

    Args:
        identity: requesting User; members are limited to their assignments.
        project_id: optional project filter.
        start_date / end_date: optional inclusive bounds on ``created_at``.
        now: reference time for the overdue check (defaults to current UTC).

    Returns:
        dict with ``by_stage``, ``by_priority``, ``by_completion``, ``overdue``,
        ``avg_completion_days`` (None when nothing is completed) and ``total``.
    """
    now = as_utc(now) or datetime.now(timezone.utc)
    tasks = _filtered_tasks(identity, project_id, start_date, end_date)

    stage_counts = Counter(t.current_stage for t in tasks)
    names = _stage_names(list(stage_counts))
    priority_counts = Counter(t.priority for t in tasks)
    completion_counts = Counter("completed" if t.completed_at else "pending" for t in tasks)

    overdue = sum(
        1 for t in tasks
        if t.due_date is not None and t.completed_at is None and as_utc(t.due_date) < now
    )

    durations = [
        (as_utc(t.completed_at) - as_utc(t.created_at)).total_seconds() / SECONDS_PER_DAY
        for t in tasks
        if t.completed_at is not None and t.created_at is not None
    ]
    avg_days = sum(durations) / len(durations) if durations else None

    return {
        "total": len(tasks),
        "by_stage": [
            {"stage": stage_id, "stage_name": names.get(stage_id), "count": count}
            for stage_id, count in stage_counts.most_common()
        ],
        "by_priority": [
            {"priority": priority, "count": count}
            for priority, count in priority_counts.most_common()
        ],
        "by_completion": [
            {"status": status, "count": count}
            for status, count in completion_counts.most_common()
        ],
        "overdue": overdue,
        "avg_completion_days": round(avg_days, 4) if avg_days is not None else None,
    }
