from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.errors import InvalidState, InvalidTransition
from app.metrics import TRANSITIONS
from app.models.review import (
    Approval,
    ApprovalEntityType,
    ApprovalStatus,
    Document,
    Task,
    TaskStatus,
)
from app.models.user import User
from app.schemas.tasks import TaskCreate
from app.services import audit
from app.services.approval_router import approval_router
from app.services.approver_policy import get_approver_policy
from app.services.common import apply_ordering, apply_pagination, coerce_uuid, touch
from app.services.notification import NotificationEvent, build_event
from app.services.permissions import Actor, Capability, authorize
from app.services.response import ListResponseMixin
from app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.pending: frozenset({TaskStatus.in_progress, TaskStatus.canceled}),
    TaskStatus.in_progress: frozenset({TaskStatus.completed, TaskStatus.canceled}),
    TaskStatus.completed: frozenset(),
    TaskStatus.canceled: frozenset(),
}

OPEN_STATUSES = (TaskStatus.pending, TaskStatus.in_progress)


def is_overdue(task: Task, now: datetime | None = None) -> bool:
    """Derived on every call; overdue is never stored."""
    return task.overdue_at(now or datetime.now(timezone.utc))


def _coerce_status(value) -> TaskStatus:
    try:
        return TaskStatus(getattr(value, "value", value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid status: {value}")


def _link(task: Task) -> str:
    return f"/tasks/{task.id}"


def _queue(outbox: list[NotificationEvent], event: NotificationEvent | None) -> None:
    if event is not None:
        outbox.append(event)


def _apply_status(task: Task, new_status: TaskStatus) -> TaskStatus:
    if new_status not in ALLOWED_TRANSITIONS[task.status]:
        raise InvalidTransition("task", task.id, task.status, new_status)
    previous = task.status
    task.status = new_status
    if new_status == TaskStatus.completed:
        task.completed_at = datetime.now(timezone.utc)
    else:
        task.completed_at = None
    touch(task)
    return previous


class Tasks(ListResponseMixin):
    @staticmethod
    def get(db: Session, task_id: str) -> Task:
        task = db.get(Task, coerce_uuid(task_id))
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    @staticmethod
    def list(
        db: Session,
        assigned_to: str | None,
        status: str | None,
        document_id: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Task]:
        query = db.query(Task)
        if assigned_to:
            query = query.filter(Task.assigned_to == coerce_uuid(assigned_to))
        if status:
            query = query.filter(Task.status == _coerce_status(status))
        if document_id:
            query = query.filter(Task.document_id == coerce_uuid(document_id))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": Task.created_at,
                "due_date": Task.due_date,
                "priority": Task.priority,
            },
        )
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def create(db: Session, actor: Actor, payload: TaskCreate) -> Task:
        data = payload.model_dump()
        assignee = db.get(User, data["assigned_to"])
        if not assignee or not assignee.is_active:
            raise HTTPException(status_code=404, detail="Assignee not found")
        if data.get("document_id"):
            doc = db.get(Document, data["document_id"])
            if not doc or not doc.is_active:
                raise HTTPException(status_code=404, detail="Document not found")

        with unit_of_work(db, "task") as outbox:
            task = Task(**data, assigned_by=actor.id, status=TaskStatus.pending)
            db.add(task)
            db.flush()
            audit.record(
                db,
                actor.id,
                "created",
                "task",
                task.id,
                {
                    "title": task.title,
                    "assigned_to": task.assigned_to,
                    "priority": task.priority,
                    "document_id": task.document_id,
                },
            )
            _queue(
                outbox,
                build_event(
                    "task.assigned",
                    "New task assigned",
                    f'You were assigned "{task.title}"',
                    _link(task),
                    [task.assigned_to],
                    exclude=actor.id,
                ),
            )
        db.refresh(task)
        TRANSITIONS.labels(entity_type="task", action="created").inc()
        logger.info("Created task %s", task.id)
        return task

    @staticmethod
    def transition(
        db: Session,
        actor: Actor,
        task_id: str,
        new_status,
        comments: str | None = None,
    ) -> Task:
        task = Tasks.get(db, task_id)
        authorize(
            actor,
            Capability.manage_any_task,
            owner_id=task.assigned_to,
            entity_type="task",
            entity_id=task.id,
        )
        new_status = _coerce_status(new_status)
        if new_status not in ALLOWED_TRANSITIONS[task.status]:
            raise InvalidTransition("task", task.id, task.status, new_status)
        awaiting = approval_router.pending_for(db, ApprovalEntityType.task, task.id)
        if awaiting and new_status == TaskStatus.completed:
            raise InvalidState(
                "task",
                task.id,
                task.status,
                "Task is awaiting approval and completes when approved",
            )

        with unit_of_work(db, "task", task.id) as outbox:
            previous = _apply_status(task, new_status)
            db.flush()
            if awaiting:
                approval_router.close_round(
                    db,
                    ApprovalEntityType.task,
                    task.id,
                    comment="Closed without decision: the task was canceled",
                )
            audit.record(
                db,
                actor.id,
                "status_changed",
                "task",
                task.id,
                {"from": previous, "to": task.status, "comments": comments},
            )
            other = task.assigned_by if actor.id == task.assigned_to else task.assigned_to
            _queue(
                outbox,
                build_event(
                    f"task.{task.status.value}",
                    "Task updated",
                    f'"{task.title}" moved from {previous.value} to {task.status.value}',
                    _link(task),
                    [other],
                    exclude=actor.id,
                ),
            )
        db.refresh(task)
        TRANSITIONS.labels(entity_type="task", action=new_status.value).inc()
        logger.info("Moved task %s to %s", task.id, task.status.value)
        return task

    @staticmethod
    def submit_for_approval(db: Session, actor: Actor, task_id: str) -> Task:
        task = Tasks.get(db, task_id)
        authorize(
            actor,
            Capability.submit_any_document,
            owner_id=task.assigned_to,
            entity_type="task",
            entity_id=task.id,
        )
        if task.status != TaskStatus.in_progress:
            raise InvalidState(
                "task",
                task.id,
                task.status,
                "Only tasks in progress can be submitted for approval",
            )
        if approval_router.pending_for(db, ApprovalEntityType.task, task.id):
            raise InvalidState(
                "task", task.id, task.status, "Task is already awaiting approval"
            )
        approvers = get_approver_policy().approvers(db, ApprovalEntityType.task, task)
        if not approvers:
            raise InvalidState(
                "task",
                task.id,
                task.status,
                "No approvers are available for this submission",
            )

        with unit_of_work(db, "task", task.id) as outbox:
            touch(task)
            db.flush()
            approval_router.open_round(db, ApprovalEntityType.task, task.id, approvers)
            audit.record(
                db,
                actor.id,
                "submitted",
                "task",
                task.id,
                {"approvers": approvers},
            )
            _queue(
                outbox,
                build_event(
                    "task.submitted",
                    "Review requested",
                    f'Task "{task.title}" is awaiting your approval',
                    _link(task),
                    approvers,
                ),
            )
        db.refresh(task)
        TRANSITIONS.labels(entity_type="task", action="submitted").inc()
        logger.info("Submitted task %s for approval", task.id)
        return task

    @staticmethod
    def on_approval_resolved(
        db: Session,
        actor: Actor,
        approval: Approval,
        outbox: list[NotificationEvent],
    ) -> Task:
        """Complete the task once its whole round approves.

        A rejection closes the round and leaves the task in progress.
        """
        task = db.get(Task, approval.entity_id)
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        if task.status != TaskStatus.in_progress:
            raise InvalidState(
                "task", task.id, task.status, "Task is not awaiting approval"
            )

        previous = task.status
        if approval.status == ApprovalStatus.rejected:
            approval_router.close_round(db, ApprovalEntityType.task, task.id)
            action = "rejected"
            touch(task)
        else:
            remaining = approval_router.pending_for(db, ApprovalEntityType.task, task.id)
            action = "approved"
            if remaining:
                touch(task)
            else:
                _apply_status(task, TaskStatus.completed)
        db.flush()
        audit.record(
            db,
            actor.id,
            action,
            "task",
            task.id,
            {
                "approval_id": approval.id,
                "comments": approval.comments,
                "from": previous,
                "to": task.status,
            },
        )
        _queue(
            outbox,
            build_event(
                f"task.{action}",
                f"Task {action}",
                f'"{task.title}" was {action}',
                _link(task),
                [task.assigned_to],
                exclude=actor.id,
            ),
        )
        return task


tasks = Tasks()
