"""
Task lifecycle service tests.

Covers creation on the initial stage, stage transitions (forward, backward,
Done handling, stale stages), field updates, deletion and side-effect
failure tolerance.
"""

from datetime import datetime, timezone

import pytest

from taskflow.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskflow.models import db
from taskflow.models.activity import ActivityLog
from taskflow.models.notification import Notification
from taskflow.models.task import Task
from taskflow.models.workflow import WorkflowStage
from taskflow.services import activity_service, task_service
from taskflow.services.notification import NotificationService


@pytest.fixture()
def task(manager, member, workflow):
    """A task assigned to ``member`` sitting on Todo."""
    return task_service.create_task(manager, {
        "title": "Write report",
        "workflow_id": workflow.id,
        "assigned_to": [member.id],
    })


def _actions(task_id):
    return [a.action for a in ActivityLog.query.filter_by(task_id=task_id).order_by(ActivityLog.id)]


def _notes(user_id, type_=None):
    q = Notification.query.filter_by(user_id=user_id)
    if type_:
        q = q.filter_by(type=type_)
    return q.order_by(Notification.id).all()


# ═══════════════════════════════════════════════════════════════
# CREATE
# ═══════════════════════════════════════════════════════════════

class TestCreate:
    def test_lands_on_initial_stage(self, task, stages):
        assert task.current_stage == stages["Todo"].id
        assert task.completed_at is None
        assert task.priority == "medium"

    def test_logs_and_notifies(self, task, member):
        assert _actions(task.id) == ["TASK_CREATED"]
        notes = _notes(member.id, "task_assigned")
        assert len(notes) == 1
        assert notes[0].message == 'New task assigned: "Write report"'
        assert notes[0].task_id == task.id

    def test_member_may_create(self, member, workflow):
        task = task_service.create_task(member, {"title": "Self-made", "workflow_id": workflow.id})
        assert task.created_by == member.id
        assert task.assignee_ids == []

    def test_requires_title(self, manager, workflow):
        with pytest.raises(ValidationError, match="title"):
            task_service.create_task(manager, {"workflow_id": workflow.id})

    def test_unknown_workflow(self, manager):
        with pytest.raises(NotFoundError):
            task_service.create_task(manager, {"title": "Lost", "workflow_id": 404})

    def test_invalid_priority(self, manager, workflow):
        with pytest.raises(ValidationError, match="priority"):
            task_service.create_task(manager, {"title": "X", "workflow_id": workflow.id, "priority": "urgent"})

    def test_unknown_assignee(self, manager, workflow):
        with pytest.raises(ValidationError, match="assignee"):
            task_service.create_task(manager, {"title": "X", "workflow_id": workflow.id, "assigned_to": [999]})
        assert Task.query.count() == 0

    def test_due_date_and_tags(self, manager, workflow):
        task = task_service.create_task(manager, {
            "title": "Dated", "workflow_id": workflow.id,
            "due_date": "2030-05-01", "tags": [" ops ", "", "q2"],
        })
        assert task.due_date.date().isoformat() == "2030-05-01"
        assert task.tags == ["ops", "q2"]

    def test_bad_due_date(self, manager, workflow):
        with pytest.raises(ValidationError, match="due_date"):
            task_service.create_task(manager, {"title": "X", "workflow_id": workflow.id, "due_date": "soon"})


# ═══════════════════════════════════════════════════════════════
# STAGE TRANSITIONS
# ═══════════════════════════════════════════════════════════════

class TestAdvanceStage:
    def test_todo_doing_done_scenario(self, task, member, manager, stages):
        task_service.advance_stage(member, task.id, stages["Doing"].id)
        assert task.current_stage == stages["Doing"].id
        assert task.completed_at is None

        task_service.advance_stage(member, task.id, stages["Done"].id)
        assert task.current_stage == stages["Done"].id
        assert task.completed_at is not None

        with pytest.raises(ForbiddenError):
            task_service.advance_stage(member, task.id, stages["Todo"].id)
        assert task.current_stage == stages["Done"].id

        task_service.advance_stage(manager, task.id, stages["Todo"].id)
        assert task.current_stage == stages["Todo"].id

    def test_member_may_stay_on_same_stage(self, task, member, stages):
        task_service.advance_stage(member, task.id, stages["Todo"].id)
        assert _actions(task.id) == ["TASK_CREATED", "STAGE_CHANGED"]

    def test_completion_timestamp_set_once(self, task, manager, stages):
        task_service.advance_stage(manager, task.id, stages["Done"].id)
        first = task.completed_at
        task_service.advance_stage(manager, task.id, stages["Doing"].id)
        task_service.advance_stage(manager, task.id, stages["Done"].id)
        assert task.completed_at == first

    def test_leaving_done_keeps_completed_at(self, task, manager, stages):
        task_service.advance_stage(manager, task.id, stages["Done"].id)
        task_service.advance_stage(manager, task.id, stages["Doing"].id)
        assert task.completed_at is not None

    def test_stage_change_activity_details(self, task, member, stages):
        task_service.advance_stage(member, task.id, stages["Doing"].id)
        log = ActivityLog.query.filter_by(task_id=task.id, action="STAGE_CHANGED").one()
        assert log.user_id == member.id
        assert log.details == {
            "previous_stage": stages["Todo"].id,
            "new_stage": stages["Doing"].id,
            "stage_name": "Doing",
        }

    def test_actor_is_not_notified_of_own_move(self, task, member, stages):
        task_service.advance_stage(member, task.id, stages["Doing"].id)
        assert _notes(member.id, "stage_changed") == []

    def test_other_assignees_are_notified(self, task, manager, member, other_member, stages):
        task_service.update_task(manager, task.id, {"assigned_to": [member.id, other_member.id]})
        task_service.advance_stage(member, task.id, stages["Doing"].id)
        notes = _notes(other_member.id, "stage_changed")
        assert len(notes) == 1
        assert notes[0].meta == {"stage_id": stages["Doing"].id, "stage_name": "Doing"}

    def test_completion_notifies_every_assignee(self, task, member, stages):
        task_service.advance_stage(member, task.id, stages["Done"].id)
        notes = _notes(member.id, "completed")
        assert len(notes) == 1
        assert notes[0].message == 'Task completed: "Write report"'

    def test_non_assignee_member_forbidden(self, task, other_member, stages):
        with pytest.raises(ForbiddenError):
            task_service.advance_stage(other_member, task.id, stages["Doing"].id)
        assert task.current_stage == stages["Todo"].id

    def test_invalid_stage(self, task, manager):
        with pytest.raises(ValidationError, match="Invalid stage"):
            task_service.advance_stage(manager, task.id, "not-a-stage")

    def test_stage_of_another_workflow_is_invalid(self, task, manager):
        from taskflow.services import workflow_service
        other = workflow_service.create_workflow(manager, {"name": "Other", "stages": [{"name": "Todo"}]})
        with pytest.raises(ValidationError, match="Invalid stage"):
            task_service.advance_stage(manager, task.id, other.stages[0].id)

    def test_missing_stage_id(self, task, manager):
        with pytest.raises(ValidationError):
            task_service.advance_stage(manager, task.id, None)

    def test_unknown_task(self, manager, stages):
        with pytest.raises(NotFoundError):
            task_service.advance_stage(manager, 999, stages["Todo"].id)

    def test_stale_current_stage_skips_order_check(self, task, member, stages):
        task.current_stage = "stage-that-was-removed"
        db.session.commit()
        task_service.advance_stage(member, task.id, stages["Todo"].id)
        assert task.current_stage == stages["Todo"].id

    def test_done_match_ignores_case(self, manager, member, workflow):
        workflow.stages.append(WorkflowStage(name="DONE ", order=7))
        db.session.commit()
        done = next(s for s in workflow.stages if s.order == 7)
        task = task_service.create_task(manager, {"title": "Caps", "workflow_id": workflow.id})
        task_service.advance_stage(manager, task.id, done.id)
        assert task.completed_at is not None

    def test_side_effect_failure_keeps_transition(self, task, member, stages, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("notification store down")

        monkeypatch.setattr(NotificationService, "notify_stage_changed", staticmethod(_boom))
        moved = task_service.advance_stage(member, task.id, stages["Doing"].id)
        assert moved.current_stage == stages["Doing"].id
        db.session.expire_all()
        assert db.session.get(Task, task.id).current_stage == stages["Doing"].id
        assert "STAGE_CHANGED" in _actions(task.id)

    def test_activity_failure_keeps_transition(self, task, member, stages, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("log store down")

        monkeypatch.setattr(activity_service, "log_activity", _boom)
        task_service.advance_stage(member, task.id, stages["Doing"].id)
        db.session.expire_all()
        assert db.session.get(Task, task.id).current_stage == stages["Doing"].id


# ═══════════════════════════════════════════════════════════════
# UPDATE
# ═══════════════════════════════════════════════════════════════

class TestUpdate:
    def test_assignee_can_update(self, task, member):
        task_service.update_task(member, task.id, {"title": "Write better report", "priority": "high"})
        db.session.expire_all()
        fresh = db.session.get(Task, task.id)
        assert fresh.title == "Write better report"
        assert fresh.priority == "high"

    def test_logs_changed_fields(self, task, member):
        task_service.update_task(member, task.id, {"priority": "low", "description": "d"})
        log = ActivityLog.query.filter_by(task_id=task.id, action="TASK_UPDATED").one()
        assert log.details == {"fields": ["description", "priority"]}

    def test_non_assignee_member_forbidden(self, task, other_member):
        with pytest.raises(ForbiddenError):
            task_service.update_task(other_member, task.id, {"title": "Mine now"})

    def test_only_new_assignees_notified(self, task, manager, member, other_member):
        task_service.update_task(manager, task.id, {"assigned_to": [member.id, other_member.id]})
        assert len(_notes(member.id, "task_assigned")) == 1  # only the creation notice
        notes = _notes(other_member.id, "task_assigned")
        assert len(notes) == 1
        assert notes[0].message == 'You\'ve been assigned to task: "Write report"'

    def test_removing_assignee_sends_nothing(self, task, manager, member):
        before = Notification.query.count()
        task_service.update_task(manager, task.id, {"assigned_to": []})
        assert task.assignee_ids == []
        assert Notification.query.count() == before

    @pytest.mark.parametrize("field", ["current_stage", "completed_at", "workflow_id", "created_by"])
    def test_protected_fields_rejected(self, task, manager, field):
        with pytest.raises(ValidationError):
            task_service.update_task(manager, task.id, {field: "x"})

    def test_unknown_field_rejected(self, task, manager):
        with pytest.raises(ValidationError, match="Unknown"):
            task_service.update_task(manager, task.id, {"colour": "red"})

    def test_bad_field_leaves_task_untouched(self, task, manager):
        with pytest.raises(ValidationError):
            task_service.update_task(manager, task.id, {"title": "Changed", "priority": "urgent"})
        db.session.expire_all()
        assert db.session.get(Task, task.id).title == "Write report"

    def test_empty_patch(self, task, manager):
        with pytest.raises(ValidationError):
            task_service.update_task(manager, task.id, {})


# ═══════════════════════════════════════════════════════════════
# DELETE / READ
# ═══════════════════════════════════════════════════════════════

class TestDeleteAndRead:
    def test_delete_removes_activity(self, task, manager, stages):
        task_service.advance_stage(manager, task.id, stages["Doing"].id)
        task_id = task.id
        task_service.delete_task(manager, task_id)
        assert db.session.get(Task, task_id) is None
        assert ActivityLog.query.filter_by(task_id=task_id).count() == 0

    def test_delete_keeps_notifications(self, task, manager, member):
        task_service.delete_task(manager, task.id)
        assert len(_notes(member.id)) == 1

    def test_member_cannot_delete(self, task, member):
        with pytest.raises(ForbiddenError):
            task_service.delete_task(member, task.id)
        assert db.session.get(Task, task.id) is not None

    def test_get_returns_recent_activity(self, task, member, stages):
        task_service.advance_stage(member, task.id, stages["Doing"].id)
        found, activity = task_service.get_task(member, task.id)
        assert found.id == task.id
        assert [a.action for a in activity] == ["STAGE_CHANGED", "TASK_CREATED"]

    def test_get_caps_activity_at_twenty(self, task, manager):
        for i in range(25):
            activity_service.log_activity(task.id, manager.id, "TASK_UPDATED", {"fields": [f"f{i}"]})
        _, activity = task_service.get_task(manager, task.id)
        assert len(activity) == 20

    def test_get_forbidden_for_outsider(self, task, other_member):
        with pytest.raises(ForbiddenError):
            task_service.get_task(other_member, task.id)

    def test_member_list_only_shows_assignments(self, task, manager, member, other_member, workflow):
        task_service.create_task(manager, {"title": "Someone else's", "workflow_id": workflow.id,
                                           "assigned_to": [other_member.id]})
        task_service.create_task(manager, {"title": "Unassigned", "workflow_id": workflow.id})
        result = task_service.list_tasks(member, {})
        assert [t.title for t in result["items"]] == ["Write report"]
        assert result["total"] == 1

    def test_member_assigned_to_filter_is_ignored(self, task, member, other_member):
        result = task_service.list_tasks(member, {"assigned_to": other_member.id})
        assert [t.id for t in result["items"]] == [task.id]

    def test_manager_list_filters_and_pagination(self, manager, workflow, stages):
        for i in range(12):
            task_service.create_task(manager, {
                "title": f"Task {i}", "workflow_id": workflow.id,
                "priority": "high" if i % 2 else "low",
            })
        page = task_service.list_tasks(manager, {"priority": "high"}, page=2, limit=4)
        assert page["total"] == 6
        assert page["pages"] == 2
        assert page["count"] == 2
        assert page["current_page"] == 2
        assert task_service.list_tasks(manager, {"stage": stages["Todo"].id})["total"] == 12

    def test_search_matches_title_description_and_tags(self, manager, workflow):
        task_service.create_task(manager, {"title": "Invoice run", "workflow_id": workflow.id})
        task_service.create_task(manager, {"title": "Other", "description": "invoice follow-up",
                                           "workflow_id": workflow.id})
        task_service.create_task(manager, {"title": "Third", "tags": ["invoicing"],
                                           "workflow_id": workflow.id})
        task_service.create_task(manager, {"title": "Unrelated", "workflow_id": workflow.id})
        assert task_service.list_tasks(manager, {"search": "invoic"})["total"] == 3


def test_completed_at_is_utc(task, manager, stages):
    task_service.advance_stage(manager, task.id, stages["Done"].id)
    stamp = task.completed_at
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    assert abs((datetime.now(timezone.utc) - stamp).total_seconds()) < 60
