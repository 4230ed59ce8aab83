"""Read-only projections over current state. Nothing here is cached."""

from datetime import datetime, timezone

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.review import (
    Activity,
    Approval,
    ApprovalStatus,
    Document,
    DocumentStatus,
    Task,
)
from app.services import audit
from app.services.common import coerce_uuid
from app.services.tasks import OPEN_STATUSES


def pending_documents(db: Session, limit: int = 50, offset: int = 0) -> list[Document]:
    return (
        db.query(Document)
        .filter(
            Document.is_active.is_(True),
            Document.status == DocumentStatus.pending,
        )
        .order_by(Document.updated_at.asc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def open_tasks_for(db: Session, user_id) -> list[Task]:
    return (
        db.query(Task)
        .filter(
            Task.assigned_to == coerce_uuid(user_id),
            Task.status.in_(OPEN_STATUSES),
        )
        .order_by(Task.due_date.asc(), Task.created_at.asc())
        .all()
    )


def unresolved_approvals_for(db: Session, user_id) -> list[Approval]:
    return (
        db.query(Approval)
        .filter(
            Approval.user_id == coerce_uuid(user_id),
            Approval.status == ApprovalStatus.pending,
        )
        .order_by(Approval.created_at.asc())
        .all()
    )


def overdue_tasks(db: Session, now: datetime | None = None) -> list[Task]:
    now = now or datetime.now(timezone.utc)
    candidates = (
        db.query(Task)
        .filter(Task.status.in_(OPEN_STATUSES), Task.due_date.isnot(None))
        .order_by(Task.due_date.asc())
        .all()
    )
    return [task for task in candidates if task.overdue_at(now)]


def recent_activities(db: Session, limit: int = 20, offset: int = 0) -> list[Activity]:
    return audit.recent(db, limit, offset)


def dashboard_stats(db: Session, now: datetime | None = None) -> dict:
    by_status = {status.value: 0 for status in DocumentStatus}
    rows = (
        db.query(Document.status, func.count(Document.id))
        .filter(Document.is_active.is_(True))
        .group_by(Document.status)
        .all()
    )
    for status, count in rows:
        by_status[status.value] = count

    open_tasks = db.query(func.count(Task.id)).filter(Task.status.in_(OPEN_STATUSES))
    pending_approvals = db.query(func.count(Approval.id)).filter(
        Approval.status == ApprovalStatus.pending
    )
    return {
        "documents_by_status": by_status,
        "open_tasks": open_tasks.scalar() or 0,
        "overdue_tasks": len(overdue_tasks(db, now)),
        "pending_approvals": pending_approvals.scalar() or 0,
    }
