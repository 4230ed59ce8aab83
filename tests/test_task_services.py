import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from app.errors import Forbidden, InvalidState, InvalidTransition
from app.models.review import (
    Activity,
    Approval,
    ApprovalEntityType,
    ApprovalStatus,
    TaskPriority,
    TaskStatus,
    as_utc,
)
from app.schemas.tasks import TaskCreate
from app.services.approval_router import ApprovalRouter
from app.services.approver_policy import set_approver_policy
from app.services.permissions import Actor
from app.services.tasks import Tasks, is_overdue
from tests.mocks import StaticApproverPolicy


def _create(db_session, assigner, assignee, **kwargs):
    payload = TaskCreate(
        title=kwargs.pop("title", "Review calibration log"),
        assigned_to=assignee.id,
        **kwargs,
    )
    return Tasks.create(db_session, Actor.from_user(assigner), payload)


def _activities(db_session, task, action):
    return (
        db_session.query(Activity)
        .filter(Activity.entity_id == task.id, Activity.action == action)
        .all()
    )


def _pending(db_session, task, user):
    return (
        db_session.query(Approval)
        .filter(
            Approval.entity_type == ApprovalEntityType.task,
            Approval.entity_id == task.id,
            Approval.user_id == user.id,
            Approval.status == ApprovalStatus.pending,
        )
        .one()
    )


class TestCreate:
    def test_create(self, db_session, manager, person):
        task = _create(db_session, manager, person, priority=TaskPriority.high)
        assert task.status == TaskStatus.pending
        assert task.priority == TaskPriority.high
        assert task.assigned_by == manager.id
        assert task.completed_at is None
        assert len(_activities(db_session, task, "created")) == 1

    def test_default_priority(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        assert task.priority == TaskPriority.medium

    def test_unknown_assignee(self, db_session, manager):
        with pytest.raises(HTTPException) as exc:
            Tasks.create(
                db_session,
                Actor.from_user(manager),
                TaskCreate(title="x", assigned_to=uuid.uuid4()),
            )
        assert exc.value.status_code == 404

    def test_unknown_document(self, db_session, manager, person):
        with pytest.raises(HTTPException) as exc:
            _create(db_session, manager, person, document_id=uuid.uuid4())
        assert exc.value.detail == "Document not found"

    def test_notifies_assignee(self, db_session, manager, person):
        with patch("app.services.unit_of_work.publish_notification") as publish:
            _create(db_session, manager, person)
        event = publish.call_args.args[0]
        assert event.type == "task.assigned"
        assert event.target_user_ids == (person.id,)

    def test_self_assignment_notifies_assignee(self, db_session, person):
        with patch("app.services.unit_of_work.publish_notification") as publish:
            task = _create(db_session, person, person)
            Tasks.transition(
                db_session, Actor.from_user(person), str(task.id), "in_progress"
            )
        assert publish.call_count == 2
        created, started = (call.args[0] for call in publish.call_args_list)
        assert created.type == "task.assigned"
        assert started.type == "task.in_progress"
        assert created.target_user_ids == started.target_user_ids == (person.id,)


class TestTransition:
    def test_complete_sets_completed_at(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        actor = Actor.from_user(person)
        Tasks.transition(db_session, actor, str(task.id), "in_progress")
        done = Tasks.transition(db_session, actor, str(task.id), TaskStatus.completed)
        assert done.status == TaskStatus.completed
        assert done.completed_at is not None
        assert as_utc(done.completed_at) >= as_utc(done.created_at)
        assert len(_activities(db_session, task, "status_changed")) == 2

    def test_terminal_states(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        actor = Actor.from_user(person)
        Tasks.transition(db_session, actor, str(task.id), "in_progress")
        Tasks.transition(db_session, actor, str(task.id), "completed")
        with pytest.raises(InvalidTransition) as exc:
            Tasks.transition(db_session, actor, str(task.id), "in_progress")
        details = exc.value.detail["details"]
        assert details["current_state"] == "completed"
        assert details["requested_state"] == "in_progress"

    def test_pending_cannot_skip_to_completed(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        with pytest.raises(InvalidTransition):
            Tasks.transition(
                db_session, Actor.from_user(person), str(task.id), "completed"
            )
        db_session.refresh(task)
        assert task.completed_at is None

    def test_cancel_from_pending(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        canceled = Tasks.transition(
            db_session, Actor.from_user(manager), str(task.id), "canceled", "dup"
        )
        assert canceled.status == TaskStatus.canceled
        assert canceled.completed_at is None
        with pytest.raises(InvalidTransition):
            Tasks.transition(
                db_session, Actor.from_user(manager), str(task.id), "pending"
            )

    def test_stranger_forbidden(self, db_session, manager, person, other_person):
        task = _create(db_session, manager, person)
        with pytest.raises(Forbidden):
            Tasks.transition(
                db_session, Actor.from_user(other_person), str(task.id), "in_progress"
            )

    def test_coordinator_may_manage(self, db_session, manager, person, coordinator):
        task = _create(db_session, manager, person)
        moved = Tasks.transition(
            db_session, Actor.from_user(coordinator), str(task.id), "in_progress"
        )
        assert moved.status == TaskStatus.in_progress

    def test_invalid_status_value(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        with pytest.raises(HTTPException) as exc:
            Tasks.transition(db_session, Actor.from_user(person), str(task.id), "done")
        assert exc.value.status_code == 400

    def test_notifies_other_party(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        with patch("app.services.unit_of_work.publish_notification") as publish:
            Tasks.transition(
                db_session, Actor.from_user(person), str(task.id), "in_progress"
            )
        assert publish.call_args.args[0].target_user_ids == (manager.id,)


class TestApproval:
    def _in_progress(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        return Tasks.transition(
            db_session, Actor.from_user(person), str(task.id), "in_progress"
        )

    def test_requires_in_progress(self, db_session, manager, person):
        set_approver_policy(StaticApproverPolicy(manager))
        task = _create(db_session, manager, person)
        with pytest.raises(InvalidState):
            Tasks.submit_for_approval(db_session, Actor.from_user(person), str(task.id))

    def test_full_approval_completes(self, db_session, manager, admin, person):
        set_approver_policy(StaticApproverPolicy(manager, admin))
        task = self._in_progress(db_session, manager, person)
        Tasks.submit_for_approval(db_session, Actor.from_user(person), str(task.id))
        assert len(_activities(db_session, task, "submitted")) == 1

        ApprovalRouter.resolve(
            db_session,
            Actor.from_user(manager),
            str(_pending(db_session, task, manager).id),
            "approved",
        )
        db_session.refresh(task)
        assert task.status == TaskStatus.in_progress

        ApprovalRouter.resolve(
            db_session,
            Actor.from_user(admin),
            str(_pending(db_session, task, admin).id),
            "approved",
        )
        db_session.refresh(task)
        assert task.status == TaskStatus.completed
        assert task.completed_at is not None

    def test_rejection_keeps_in_progress(self, db_session, manager, admin, person):
        set_approver_policy(StaticApproverPolicy(manager, admin))
        task = self._in_progress(db_session, manager, person)
        Tasks.submit_for_approval(db_session, Actor.from_user(person), str(task.id))
        ApprovalRouter.resolve(
            db_session,
            Actor.from_user(admin),
            str(_pending(db_session, task, admin).id),
            "rejected",
            "missing signature",
        )
        db_session.refresh(task)
        assert task.status == TaskStatus.in_progress
        assert task.completed_at is None
        remaining = ApprovalRouter.pending_for(
            db_session, ApprovalEntityType.task, task.id
        )
        assert remaining == []

    def test_cannot_complete_while_awaiting(self, db_session, manager, person):
        set_approver_policy(StaticApproverPolicy(manager))
        task = self._in_progress(db_session, manager, person)
        Tasks.submit_for_approval(db_session, Actor.from_user(person), str(task.id))
        with pytest.raises(InvalidState):
            Tasks.transition(
                db_session, Actor.from_user(person), str(task.id), "completed"
            )

    def test_cancel_closes_round(self, db_session, manager, person):
        set_approver_policy(StaticApproverPolicy(manager))
        task = self._in_progress(db_session, manager, person)
        Tasks.submit_for_approval(db_session, Actor.from_user(person), str(task.id))
        Tasks.transition(db_session, Actor.from_user(manager), str(task.id), "canceled")
        assert (
            ApprovalRouter.pending_for(db_session, ApprovalEntityType.task, task.id)
            == []
        )

    def test_double_submit(self, db_session, manager, person):
        set_approver_policy(StaticApproverPolicy(manager))
        task = self._in_progress(db_session, manager, person)
        actor = Actor.from_user(person)
        Tasks.submit_for_approval(db_session, actor, str(task.id))
        with pytest.raises(InvalidState):
            Tasks.submit_for_approval(db_session, actor, str(task.id))


class TestOverdue:
    def test_overdue_predicate(self, db_session, manager, person):
        now = datetime.now(timezone.utc)
        task = _create(db_session, manager, person, due_date=now - timedelta(hours=1))
        assert is_overdue(task, now) is True
        assert is_overdue(task, now - timedelta(hours=2)) is False

    def test_closed_tasks_are_never_overdue(self, db_session, manager, person):
        now = datetime.now(timezone.utc)
        task = _create(db_session, manager, person, due_date=now - timedelta(days=1))
        Tasks.transition(db_session, Actor.from_user(manager), str(task.id), "canceled")
        assert is_overdue(task, now) is False

    def test_no_due_date(self, db_session, manager, person):
        task = _create(db_session, manager, person)
        assert is_overdue(task) is False
