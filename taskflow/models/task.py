"""
Task domain model.

A task is bound to one workflow and always sits on one of that workflow's
stages (``current_stage`` holds the stage id). Assignees are a many-to-many
link to users.
"""

from taskflow.models import _utcnow, db

PRIORITY_LOW = "low"
PRIORITY_MEDIUM = "medium"
PRIORITY_HIGH = "high"

TASK_PRIORITIES = (PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH)

task_assignees = db.Table(
    "task_assignees",
    db.Column("task_id", db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    priority = db.Column(db.String(10), nullable=False, default=PRIORITY_MEDIUM, index=True)
    current_stage = db.Column(db.String(36), nullable=False, index=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id"), nullable=False, index=True,
    )
    project_id = db.Column(db.String(100), nullable=False, default="default", index=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    tags = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    workflow = db.relationship("Workflow")
    assignees = db.relationship("User", secondary=task_assignees, lazy="selectin")
    creator = db.relationship("User", foreign_keys=[created_by])

    @property
    def assignee_ids(self):
        return [u.id for u in self.assignees]

    def is_assigned_to(self, user_id):
        return user_id in self.assignee_ids

    def to_dict(self, expand=True):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "current_stage": self.current_stage,
            "assigned_to": self.assignee_ids,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "workflow_id": self.workflow_id,
            "project_id": self.project_id,
            "created_by": self.created_by,
            "tags": self.tags or [],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if expand:
            d["workflow"] = self.workflow.to_summary() if self.workflow else None
            d["assignees"] = [u.to_summary() for u in self.assignees]
            d["creator"] = self.creator.to_summary() if self.creator else None
        return d

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]}>"
