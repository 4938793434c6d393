"""
Workflow Blueprint.

Endpoints:
    POST   /api/v1/workflows            create (admin, manager)
    GET    /api/v1/workflows            list visible workflows (?project_id=)
    GET    /api/v1/workflows/<id>       single workflow with stages
    PUT    /api/v1/workflows/<id>       update fields / stage list (admin, manager)
    DELETE /api/v1/workflows/<id>       delete (admin, manager)

Layer contract:
    - Blueprint: parse input, call workflow_service, shape the response.
    - NO db.session calls here; ownership rules live in the policy module.
"""

from flask import Blueprint, request

from taskflow.auth import current_user, login_required, require_role
from taskflow.models.user import ROLE_ADMIN, ROLE_MANAGER
from taskflow.services import workflow_service
from taskflow.utils.helpers import api_success, get_json_body

workflow_bp = Blueprint("workflow_bp", __name__, url_prefix="/api/v1")


@workflow_bp.route("/workflows", methods=["POST"])
@login_required
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_workflow():
    """
    Body: { "name": "...", "description": "...", "project_id": "...",
            "is_default": false, "stages": [{"name": "Todo", "order": 0, "color": "#ccc"}] }
    """
    data = get_json_body()
    workflow = workflow_service.create_workflow(current_user(), data)
    return api_success(workflow.to_dict(), 201)


@workflow_bp.route("/workflows", methods=["GET"])
@login_required
def list_workflows():
    workflows = workflow_service.list_workflows(current_user(), request.args.get("project_id"))
    return api_success([w.to_dict() for w in workflows], count=len(workflows))


@workflow_bp.route("/workflows/<int:workflow_id>", methods=["GET"])
@login_required
def get_workflow(workflow_id):
    workflow = workflow_service.get_workflow(current_user(), workflow_id)
    return api_success(workflow.to_dict())


@workflow_bp.route("/workflows/<int:workflow_id>", methods=["PUT"])
@login_required
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_workflow(workflow_id):
    """Stages sent with an ``id`` keep it; stages without one are created."""
    data = get_json_body()
    workflow = workflow_service.update_workflow(current_user(), workflow_id, data)
    return api_success(workflow.to_dict())


@workflow_bp.route("/workflows/<int:workflow_id>", methods=["DELETE"])
@login_required
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_workflow(workflow_id):
    workflow_service.delete_workflow(current_user(), workflow_id)
    return api_success({}, message="Workflow deleted successfully")
