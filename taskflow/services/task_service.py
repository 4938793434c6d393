"""
Task Lifecycle Service.

Manages tasks bound to a workflow:
  - create_task: place a new task on the workflow's initial stage
  - advance_stage: validated stage transitions with completion tracking
  - update_task: field-level merge with assignment notifications
  - delete_task: remove a task together with its activity history
  - list_tasks / get_task: role-scoped reads

Side effects (activity log rows, notifications) are written after the task
itself is committed. A failing side effect is rolled back and logged; the
task change stands and the caller still gets a success.

Concurrent transitions on one task are last-write-wins: there is no version
column on ``tasks``.

Usage:
    from taskflow.services.task_service import advance_stage

    task = advance_stage(current_user, task_id=7, target_stage_id="3f0c...")
"""

import logging
import math
from datetime import datetime, timezone

from taskflow.core.exceptions import NotFoundError, ValidationError
from taskflow.models import db
from taskflow.models.activity import (
    ACTION_STAGE_CHANGED,
    ACTION_TASK_CREATED,
    ACTION_TASK_UPDATED,
)
from taskflow.models.task import PRIORITY_MEDIUM, TASK_PRIORITIES, Task
from taskflow.models.user import User
from taskflow.models.workflow import Workflow
from taskflow.services import activity_service
from taskflow.services.notification import NotificationService
from taskflow.services.policy import enforce
from taskflow.services.workflow_service import (
    DEFAULT_PROJECT_ID,
    find_stage,
    resolve_initial_stage,
)
from taskflow.utils.helpers import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, parse_datetime, str_field

logger = logging.getLogger(__name__)

# Fields a PUT may change. Stage, completion and ownership only move
# through their own operations.
UPDATABLE_FIELDS = {"title", "description", "priority", "assigned_to", "due_date", "tags", "project_id"}
PROTECTED_FIELDS = {"id", "current_stage", "completed_at", "workflow_id", "created_by", "created_at", "updated_at"}


# ═══════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════
def _side_effect(label: str, func, *args, **kwargs):
    """Run a post-commit side effect; failures are logged, never raised."""
    try:
        return func(*args, **kwargs)
    except Exception:
        db.session.rollback()
        logger.exception("Side effect '%s' failed; primary change kept", label)
        return None


def _get_task_or_404(task_id: int) -> Task:
    task = db.session.get(Task, task_id)
    if not task:
        raise NotFoundError("Task", task_id)
    return task


def _validate_priority(priority):
    if priority not in TASK_PRIORITIES:
        raise ValidationError(
            f"Invalid priority. Must be one of: {list(TASK_PRIORITIES)}",
            details={"priority": priority},
        )
    return priority


def _resolve_assignees(user_ids) -> list[User]:
    if user_ids is None:
        return []
    if not isinstance(user_ids, list):
        raise ValidationError("assigned_to must be a list of user ids")
    try:
        ids = list(dict.fromkeys(int(uid) for uid in user_ids))
    except (TypeError, ValueError):
        raise ValidationError("assigned_to must be a list of user ids")
    if not ids:
        return []
    users = User.query.filter(User.id.in_(ids)).all()
    found = {u.id for u in users}
    missing = [uid for uid in ids if uid not in found]
    if missing:
        raise ValidationError("Unknown assignee(s)", details={"assigned_to": missing})
    by_id = {u.id: u for u in users}
    return [by_id[uid] for uid in ids]


def _clean_tags(tags):
    if tags is None:
        return []
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise ValidationError("tags must be a list of strings")
    return [t.strip() for t in tags if t.strip()]


# ═══════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════
def create_task(identity, data: dict) -> Task:
    """Create a task on the initial stage of its workflow."""
    title = str_field(data, "title").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    workflow_id = data.get("workflow_id")
    if workflow_id is None:
        raise ValidationError("workflow_id is required", details={"workflow_id": "required"})

    try:
        workflow_id = int(workflow_id)
    except (TypeError, ValueError):
        raise ValidationError("workflow_id must be an integer", details={"workflow_id": workflow_id})

    workflow = db.session.get(Workflow, workflow_id)
    if not workflow:
        raise NotFoundError("Workflow", workflow_id)
    initial = resolve_initial_stage(workflow)

    priority = _validate_priority(data.get("priority") or PRIORITY_MEDIUM)
    assignees = _resolve_assignees(data.get("assigned_to"))

    task = Task(
        title=title,
        description=str_field(data, "description"),
        priority=priority,
        workflow_id=workflow.id,
        current_stage=initial.id,
        due_date=parse_datetime(data.get("due_date"), "due_date"),
        tags=_clean_tags(data.get("tags")),
        project_id=data.get("project_id") or workflow.project_id or DEFAULT_PROJECT_ID,
        created_by=identity.id,
    )
    task.assignees = assignees
    db.session.add(task)
    db.session.commit()
    logger.info(
        "Task %s created in workflow %s by user %s", task.id, workflow.id, identity.id,
        extra={"task_id": task.id, "workflow_id": workflow.id, "stage": initial.id},
    )

    _side_effect(
        "activity:TASK_CREATED", activity_service.log_activity,
        task.id, identity.id, ACTION_TASK_CREATED, {"title": title, "priority": task.priority},
    )
    if assignees:
        _side_effect(
            "notify:task_assigned", NotificationService.notify_assigned,
            task, [u.id for u in assignees], initial=True,
        )
    return task


# ═══════════════════════════════════════════════════════════════
# Read
# ═══════════════════════════════════════════════════════════════
def list_tasks(identity, filters: dict | None = None, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict:
    """Filtered, paginated task listing. Members only ever see their own assignments."""
    filters = filters or {}
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)

    q = Task.query
    if not identity.is_privileged:
        q = q.filter(Task.assignees.any(User.id == identity.id))
    elif filters.get("assigned_to"):
        try:
            assignee_id = int(filters["assigned_to"])
        except (TypeError, ValueError):
            raise ValidationError("assigned_to must be a user id")
        q = q.filter(Task.assignees.any(User.id == assignee_id))

    if filters.get("workflow_id"):
        try:
            q = q.filter(Task.workflow_id == int(filters["workflow_id"]))
        except (TypeError, ValueError):
            raise ValidationError("workflow_id must be an integer")
    if filters.get("project_id"):
        q = q.filter(Task.project_id == filters["project_id"])
    if filters.get("stage"):
        q = q.filter(Task.current_stage == filters["stage"])
    if filters.get("priority"):
        q = q.filter(Task.priority == filters["priority"])
    if filters.get("search"):
        like = f"%{filters['search'].strip()}%"
        q = q.filter(db.or_(
            Task.title.ilike(like),
            Task.description.ilike(like),
            db.cast(Task.tags, db.String).ilike(like),
        ))

    total = q.count()
    items = (
        q.order_by(Task.created_at.desc(), Task.id.desc())
        .offset((page - 1) * limit).limit(limit).all()
    )
    return {
        "count": len(items),
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
        "current_page": page,
        "items": items,
    }


def get_task(identity, task_id: int) -> tuple[Task, list]:
    """Return the task and its most recent activity."""
    task = _get_task_or_404(task_id)
    enforce(identity, "task.view", task)
    return task, activity_service.list_for_task(task.id)


# ═══════════════════════════════════════════════════════════════
# Stage transition
# ═══════════════════════════════════════════════════════════════
def advance_stage(identity, task_id: int, target_stage_id: str) -> Task:
    """
    Move a task to another stage of its workflow.

    Members may move their tasks forward or sideways only. Entering a stage
    named "Done" stamps ``completed_at`` the first time and tells every
    assignee; every call logs STAGE_CHANGED and notifies the other assignees.

    Raises:
        NotFoundError, ValidationError, ForbiddenError
    """
    if not target_stage_id:
        raise ValidationError("stage_id is required", details={"stage_id": "required"})

    task = _get_task_or_404(task_id)
    enforce(identity, "task.move_stage", task)

    workflow = db.session.get(Workflow, task.workflow_id)
    if not workflow:
        raise NotFoundError("Workflow", task.workflow_id)

    try:
        target = find_stage(workflow, target_stage_id)
    except NotFoundError:
        raise ValidationError("Invalid stage", details={"stage_id": target_stage_id})

    try:
        current = find_stage(workflow, task.current_stage)
    except NotFoundError:
        # Stale reference: no ordering constraint to apply.
        current = None

    if current is not None and target.order < current.order:
        enforce(identity, "task.move_backward", task)

    previous_stage = task.current_stage
    task.current_stage = target.id
    just_completed = target.is_done and task.completed_at is None
    if just_completed:
        task.completed_at = datetime.now(timezone.utc)
    db.session.commit()
    logger.info(
        "Task %s moved %s -> %s (%s) by user %s",
        task.id, previous_stage, target.id, target.name, identity.id,
        extra={"task_id": task.id, "workflow_id": task.workflow_id, "stage": target.id},
    )

    if just_completed:
        _side_effect("notify:completed", NotificationService.notify_completed, task)
    _side_effect(
        "activity:STAGE_CHANGED", activity_service.log_activity,
        task.id, identity.id, ACTION_STAGE_CHANGED,
        {"previous_stage": previous_stage, "new_stage": target.id, "stage_name": target.name},
    )
    _side_effect(
        "notify:stage_changed", NotificationService.notify_stage_changed,
        task, target, identity.id,
    )
    return task


# ═══════════════════════════════════════════════════════════════
# Update
# ═══════════════════════════════════════════════════════════════
def update_task(identity, task_id: int, patch: dict) -> Task:
    """Merge ``patch`` onto the task; newly added assignees are notified."""
    task = _get_task_or_404(task_id)
    enforce(identity, "task.update", task)

    if not isinstance(patch, dict) or not patch:
        raise ValidationError("No fields to update")
    protected = sorted(set(patch) & PROTECTED_FIELDS)
    if protected:
        raise ValidationError(
            "These fields cannot be changed here; use the stage endpoint for stage moves",
            details={"fields": protected},
        )
    unknown = sorted(set(patch) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError("Unknown field(s)", details={"fields": unknown})

    # Validate everything before touching the task so a bad field leaves it clean.
    changes = {}
    if "title" in patch:
        title = str_field(patch, "title").strip()
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        changes["title"] = title
    if "description" in patch:
        changes["description"] = str_field(patch, "description")
    if "priority" in patch:
        changes["priority"] = _validate_priority(patch.get("priority"))
    if "due_date" in patch:
        changes["due_date"] = parse_datetime(patch.get("due_date"), "due_date")
    if "tags" in patch:
        changes["tags"] = _clean_tags(patch.get("tags"))
    if "project_id" in patch:
        changes["project_id"] = patch.get("project_id") or DEFAULT_PROJECT_ID
    if "assigned_to" in patch:
        changes["assignees"] = _resolve_assignees(patch.get("assigned_to"))

    old_assignees = set(task.assignee_ids)
    for field, value in changes.items():
        setattr(task, field, value)
    db.session.commit()
    logger.info(
        "Task %s updated by user %s: %s", task.id, identity.id, sorted(patch),
        extra={"task_id": task.id, "workflow_id": task.workflow_id},
    )

    _side_effect(
        "activity:TASK_UPDATED", activity_service.log_activity,
        task.id, identity.id, ACTION_TASK_UPDATED, {"fields": sorted(patch)},
    )
    added = [uid for uid in task.assignee_ids if uid not in old_assignees]
    if added:
        _side_effect("notify:task_assigned", NotificationService.notify_assigned, task, added)
    return task


# ═══════════════════════════════════════════════════════════════
# Delete
# ═══════════════════════════════════════════════════════════════
def delete_task(identity, task_id: int) -> None:
    """Delete the task and all of its activity rows in one transaction."""
    task = _get_task_or_404(task_id)
    enforce(identity, "task.delete", task)
    workflow_id = task.workflow_id

    try:
        removed = activity_service.delete_for_task(task.id)
        db.session.delete(task)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info(
        "Task %s deleted by user %s (%d activity rows)", task_id, identity.id, removed,
        extra={"task_id": task_id, "workflow_id": workflow_id},
    )
