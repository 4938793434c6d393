"""
Workflow domain model.

Models:
    - Workflow: named, ordered set of stages a task moves through
    - WorkflowStage: one position within a workflow; ``order`` is unique per workflow
"""

import uuid

from taskflow.models import _utcnow, db


def _stage_id():
    return str(uuid.uuid4())


class Workflow(db.Model):
    __tablename__ = "workflows"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    project_id = db.Column(db.String(100), nullable=False, default="default", index=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    stages = db.relationship(
        "WorkflowStage",
        back_populates="workflow",
        order_by="WorkflowStage.order",
        cascade="all, delete-orphan",
    )
    creator = db.relationship("User", foreign_keys=[created_by])

    def to_summary(self):
        return {
            "id": self.id,
            "name": self.name,
            "stages": [s.to_dict() for s in self.stages],
        }

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "project_id": self.project_id,
            "is_default": self.is_default,
            "created_by": self.created_by,
            "stages": [s.to_dict() for s in self.stages],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Workflow {self.id}: {self.name}>"


class WorkflowStage(db.Model):
    __tablename__ = "workflow_stages"

    id = db.Column(db.String(36), primary_key=True, default=_stage_id)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(100), nullable=False)
    order = db.Column(db.Integer, nullable=False)
    color = db.Column(db.String(20), nullable=True)

    __table_args__ = (
        db.UniqueConstraint("workflow_id", "order", name="uq_workflow_stage_order"),
    )

    workflow = db.relationship("Workflow", back_populates="stages")

    @property
    def is_done(self):
        return (self.name or "").strip().lower() == "done"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "order": self.order,
            "color": self.color,
        }

    def __repr__(self):
        return f"<WorkflowStage {self.id}: {self.name} ({self.order})>"
