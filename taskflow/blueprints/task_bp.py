"""
Task Blueprint.

Endpoints:
    POST   /api/v1/tasks                         create on the workflow's first stage
    GET    /api/v1/tasks                         filtered, paginated list
    GET    /api/v1/tasks/analytics/overview      rollups over visible tasks
    GET    /api/v1/tasks/<id>                    task + recent activity
    PUT    /api/v1/tasks/<id>                    field update
    PATCH  /api/v1/tasks/<id>/stage              stage transition
    DELETE /api/v1/tasks/<id>                    delete (admin, manager)

List filters: workflow_id, project_id, stage, priority, assigned_to, search,
page, limit. ``assigned_to`` is ignored for members, who only ever see
their own assignments.
"""

import logging

from flask import Blueprint, request

from taskflow.auth import current_user, login_required, require_role
from taskflow.models.user import ROLE_ADMIN, ROLE_MANAGER
from taskflow.services import analytics_service, task_service
from taskflow.utils.helpers import api_success, get_json_body, get_pagination, parse_datetime

logger = logging.getLogger(__name__)

task_bp = Blueprint("task_bp", __name__, url_prefix="/api/v1")

_LIST_FILTERS = ("workflow_id", "project_id", "stage", "priority", "assigned_to", "search")


@task_bp.route("/tasks", methods=["POST"])
@login_required
def create_task():
    """
    Body: { "title": "...", "workflow_id": 1, "description": "...",
            "priority": "low|medium|high", "assigned_to": [2, 3],
            "due_date": "2025-01-31", "tags": ["..."], "project_id": "..." }
    """
    data = get_json_body()
    task = task_service.create_task(current_user(), data)
    return api_success(task.to_dict(), 201)


@task_bp.route("/tasks", methods=["GET"])
@login_required
def list_tasks():
    page, limit = get_pagination()
    filters = {key: request.args.get(key) for key in _LIST_FILTERS if request.args.get(key)}
    result = task_service.list_tasks(current_user(), filters, page=page, limit=limit)
    return api_success(
        [t.to_dict() for t in result["items"]],
        count=result["count"],
        total=result["total"],
        pages=result["pages"],
        current_page=result["current_page"],
    )


# Registered before /tasks/<int:task_id> so the literal path wins.
@task_bp.route("/tasks/analytics/overview", methods=["GET"])
@login_required
def analytics_overview():
    """Query: project_id, start_date, end_date (ISO dates, inclusive)."""
    overview = analytics_service.task_overview(
        current_user(),
        project_id=request.args.get("project_id"),
        start_date=parse_datetime(request.args.get("start_date"), "start_date"),
        end_date=parse_datetime(request.args.get("end_date"), "end_date"),
    )
    return api_success(overview)


@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
@login_required
def get_task(task_id):
    task, activity = task_service.get_task(current_user(), task_id)
    data = task.to_dict()
    data["activity_logs"] = [a.to_dict() for a in activity]
    return api_success(data)


@task_bp.route("/tasks/<int:task_id>", methods=["PUT"])
@login_required
def update_task(task_id):
    data = get_json_body()
    task = task_service.update_task(current_user(), task_id, data)
    return api_success(task.to_dict())


@task_bp.route("/tasks/<int:task_id>/stage", methods=["PATCH"])
@login_required
def move_stage(task_id):
    """Body: { "stage_id": "<stage uuid>" }"""
    data = get_json_body()
    stage_id = data.get("stage_id") or data.get("stageId")
    task = task_service.advance_stage(current_user(), task_id, stage_id)
    stage_name = next((s.name for s in task.workflow.stages if s.id == task.current_stage), None)
    return api_success(task.to_dict(), message=f"Task moved to {stage_name}")


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@login_required
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_task(task_id):
    task_service.delete_task(current_user(), task_id)
    return api_success({}, message="Task deleted successfully")
