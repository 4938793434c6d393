"""
Workflow Service: stage model and workflow CRUD.

Stage model:
  - validate_stage_set: non-empty, named, integer orders >= 0, orders pairwise distinct
  - resolve_initial_stage: the stage with the lowest order
  - find_stage: stage lookup by id within one workflow

CRUD applies the role / ownership rules from ``policy``. All commits happen
here, never in the blueprint.
"""

import logging

from taskflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from taskflow.models import db
from taskflow.models.task import Task
from taskflow.models.workflow import Workflow, WorkflowStage
from taskflow.services.policy import enforce
from taskflow.utils.helpers import str_field

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_ID = "default"


# ═══════════════════════════════════════════════════════════════
# Stage model
# ═══════════════════════════════════════════════════════════════
def normalize_stages(stages) -> list[dict]:
    """Return plain stage dicts with ``order`` defaulted to the list index.

    Raises ValidationError for anything that is not a list of objects.
    """
    if not isinstance(stages, list):
        raise ValidationError("stages must be a list", details={"stages": "expected list"})
    normalized = []
    for index, raw in enumerate(stages):
        if not isinstance(raw, dict):
            raise ValidationError(f"Stage #{index} must be an object")
        name = raw.get("name")
        if isinstance(name, str):
            name = name.strip()
        order = raw.get("order")
        normalized.append({
            "id": raw.get("id"),
            "name": name,
            "order": index if order is None else order,
            "color": raw.get("color"),
        })
    return normalized


def validate_stage_set(stages) -> None:
    """Reject an empty stage list, unnamed stages, bad orders and duplicate orders."""
    if not stages:
        raise ValidationError("At least one stage is required")
    seen = set()
    for index, stage in enumerate(stages):
        name = stage.get("name") if isinstance(stage, dict) else getattr(stage, "name", None)
        order = stage.get("order") if isinstance(stage, dict) else getattr(stage, "order", None)
        if not name or not isinstance(name, str):
            raise ValidationError(f"Stage #{index} needs a name", details={"stage": index})
        if isinstance(order, bool) or not isinstance(order, int) or order < 0:
            raise ValidationError(
                f"Stage '{name}' order must be a non-negative integer",
                details={"stage": index, "order": order},
            )
        if order in seen:
            raise ValidationError("Stage orders must be unique", details={"order": order})
        seen.add(order)


def resolve_initial_stage(workflow: Workflow) -> WorkflowStage:
    """Return the stage with the minimum order."""
    if not workflow.stages:
        raise ValidationError("Workflow has no stages")
    return min(workflow.stages, key=lambda s: s.order)


def find_stage(workflow: Workflow, stage_id: str) -> WorkflowStage:
    for stage in workflow.stages:
        if stage.id == stage_id:
            return stage
    raise NotFoundError("Stage", stage_id)


def _parse_flag(value, field: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean", details={field: value})
    return value


def get_workflow_or_404(workflow_id: int) -> Workflow:
    workflow = db.session.get(Workflow, workflow_id)
    if not workflow:
        raise NotFoundError("Workflow", workflow_id)
    return workflow


# ═══════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════
def create_workflow(identity, data: dict) -> Workflow:
    """Create a workflow with its stages. Nothing is written if validation fails."""
    enforce(identity, "workflow.create")

    name = str_field(data, "name").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    stages = normalize_stages(data.get("stages") or [])
    validate_stage_set(stages)

    workflow = Workflow(
        name=name,
        description=str_field(data, "description"),
        project_id=data.get("project_id") or DEFAULT_PROJECT_ID,
        is_default=_parse_flag(data.get("is_default", False), "is_default"),
        created_by=identity.id,
    )
    workflow.stages = [
        WorkflowStage(name=s["name"], order=s["order"], color=s["color"])
        for s in stages
    ]
    db.session.add(workflow)
    db.session.commit()
    logger.info(
        "Workflow %s created by user %s with %d stages", workflow.id, identity.id, len(stages),
        extra={"workflow_id": workflow.id},
    )
    return workflow


def list_workflows(identity, project_id: str | None = None) -> list[Workflow]:
    """Admins/managers see all workflows; members see default and their own."""
    q = Workflow.query
    if project_id:
        q = q.filter(Workflow.project_id == project_id)
    if not identity.is_privileged:
        q = q.filter(db.or_(Workflow.is_default.is_(True), Workflow.created_by == identity.id))
    return q.order_by(Workflow.created_at.desc(), Workflow.id.desc()).all()


def get_workflow(identity, workflow_id: int) -> Workflow:
    workflow = get_workflow_or_404(workflow_id)
    enforce(identity, "workflow.view", workflow)
    return workflow


def _replace_stages(workflow: Workflow, stages: list[dict]) -> None:
    """Swap in a new stage list, keeping ids of stages that are resubmitted.

    Stages still occupied by tasks may not be removed.
    """
    existing = {s.id: s for s in workflow.stages}
    keep_ids = {s["id"] for s in stages if s["id"] in existing}
    removed = [s for sid, s in existing.items() if sid not in keep_ids]

    if removed:
        occupied = (
            db.session.query(Task.current_stage)
            .filter(Task.workflow_id == workflow.id, Task.current_stage.in_([s.id for s in removed]))
            .distinct().all()
        )
        if occupied:
            names = sorted(existing[row[0]].name for row in occupied)
            raise ValidationError(
                "Cannot remove stages that still hold tasks",
                details={"stages": names},
            )
        for stage in removed:
            workflow.stages.remove(stage)
        db.session.flush()

    # Park kept stages on negative orders so the (workflow_id, order)
    # unique constraint holds while orders are shuffled.
    kept = [existing[sid] for sid in keep_ids]
    for i, stage in enumerate(kept):
        stage.order = -(i + 1)
    if kept:
        db.session.flush()

    for s in stages:
        if s["id"] in existing:
            stage = existing[s["id"]]
            stage.name = s["name"]
            stage.order = s["order"]
            stage.color = s["color"]
        else:
            workflow.stages.append(WorkflowStage(name=s["name"], order=s["order"], color=s["color"]))


def update_workflow(identity, workflow_id: int, data: dict) -> Workflow:
    """Update fields and, when ``stages`` is supplied, the stage list."""
    workflow = get_workflow_or_404(workflow_id)
    enforce(identity, "workflow.update", workflow)

    if "stages" in data:
        stages = normalize_stages(data.get("stages") or [])
        validate_stage_set(stages)
    else:
        stages = None

    try:
        if "name" in data:
            name = str_field(data, "name").strip()
            if not name:
                raise ValidationError("name cannot be empty", details={"name": "required"})
            workflow.name = name
        if "description" in data:
            workflow.description = str_field(data, "description")
        if "project_id" in data:
            workflow.project_id = data.get("project_id") or DEFAULT_PROJECT_ID
        if "is_default" in data:
            workflow.is_default = _parse_flag(data.get("is_default"), "is_default")
        if stages is not None:
            _replace_stages(workflow, stages)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(workflow)
    logger.info("Workflow %s updated by user %s", workflow.id, identity.id, extra={"workflow_id": workflow.id})
    return workflow


def delete_workflow(identity, workflow_id: int) -> None:
    workflow = get_workflow_or_404(workflow_id)
    enforce(identity, "workflow.delete", workflow)

    task_count = Task.query.filter_by(workflow_id=workflow.id).count()
    if task_count:
        raise ConflictError(f"Workflow still has {task_count} task(s); move or delete them first")

    db.session.delete(workflow)
    db.session.commit()
    logger.info("Workflow %s deleted by user %s", workflow_id, identity.id, extra={"workflow_id": workflow_id})
