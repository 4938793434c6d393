"""
Access policy: one place for every role and ownership rule.

``authorize`` is a pure function of (identity, operation, resource): it reads
attributes only and never touches the database, so the rules are unit-tested
without a request or an app context.

Operations:
    workflow.create      admin, manager
    workflow.view        admin, manager; members only default or own workflows
    workflow.update      owner or admin, and default workflows admin only
    workflow.delete      same as workflow.update
    task.view            admin, manager; members only tasks they are assigned to
    task.update          same as task.view
    task.move_stage      same as task.view
    task.move_backward   admin, manager
    task.delete          admin, manager

Usage:
    from taskflow.services.policy import authorize, enforce

    if authorize(user, "task.view", task):
        ...
    enforce(user, "task.delete", task)   # raises ForbiddenError on deny
"""

from dataclasses import dataclass

from taskflow.core.exceptions import ForbiddenError
from taskflow.models.user import PRIVILEGED_ROLES, ROLE_ADMIN


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    def __bool__(self):
        return self.allowed


ALLOW = Decision(True)


def _deny(reason):
    return Decision(False, reason)


def _is_privileged(identity):
    return identity.role in PRIVILEGED_ROLES


def _is_assignee(identity, task):
    return task is not None and task.is_assigned_to(identity.id)


def _owns(identity, workflow):
    return workflow is not None and workflow.created_by == identity.id


def _workflow_view(identity, workflow):
    if _is_privileged(identity) or workflow.is_default or _owns(identity, workflow):
        return ALLOW
    return _deny("Not authorized to access this workflow")


def _workflow_modify(verb):
    def rule(identity, workflow):
        if not _is_privileged(identity):
            return _deny("Insufficient permissions")
        if not _owns(identity, workflow) and identity.role != ROLE_ADMIN:
            return _deny(f"Not authorized to {verb} this workflow")
        if workflow.is_default and identity.role != ROLE_ADMIN:
            return _deny(f"Cannot {verb} default workflow")
        return ALLOW
    return rule


def _privileged_only(reason):
    def rule(identity, _resource):
        return ALLOW if _is_privileged(identity) else _deny(reason)
    return rule


def _assigned_task(reason):
    def rule(identity, task):
        if _is_privileged(identity) or _is_assignee(identity, task):
            return ALLOW
        return _deny(reason)
    return rule


_RULES = {
    "workflow.create": _privileged_only("Insufficient permissions"),
    "workflow.view": _workflow_view,
    "workflow.update": _workflow_modify("update"),
    "workflow.delete": _workflow_modify("delete"),
    "task.view": _assigned_task("Not authorized to access this task"),
    "task.update": _assigned_task("Not authorized to update this task"),
    "task.move_stage": _assigned_task("Not authorized to update this task"),
    "task.move_backward": _privileged_only("Cannot move task to previous stage"),
    "task.delete": _privileged_only("Not authorized to delete tasks"),
}


def authorize(identity, operation: str, resource=None) -> Decision:
    """Return the policy decision for ``identity`` performing ``operation``."""
    rule = _RULES.get(operation)
    if rule is None:
        return _deny(f"Unknown operation: {operation}")
    return rule(identity, resource)


def enforce(identity, operation: str, resource=None) -> None:
    """Raise ForbiddenError unless ``authorize`` allows the operation."""
    decision = authorize(identity, operation, resource)
    if not decision:
        raise ForbiddenError(decision.reason, operation=operation)


def authorize_role(identity, allowed_roles) -> None:
    """Raise ForbiddenError if ``identity.role`` is not in ``allowed_roles``."""
    if identity.role not in allowed_roles:
        raise ForbiddenError(
            f"Insufficient permissions (required: {', '.join(sorted(allowed_roles))})",
            operation="role",
        )
