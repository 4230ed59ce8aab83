import logging
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from app.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.overdue.notify_overdue_tasks", ignore_result=True)
def notify_overdue_tasks() -> None:
    """Remind each assignee about their overdue tasks."""
    from app.db import SessionLocal

    db = SessionLocal()
    try:
        _notify(db, datetime.now(timezone.utc))
    except Exception as e:
        logger.exception("Failed to send overdue reminders: %s", e)
    finally:
        db.close()


def _notify(db: Session, now: datetime) -> int:
    from app.services.notification import build_event, publish_notification
    from app.services.queries import overdue_tasks

    by_assignee = defaultdict(list)
    for task in overdue_tasks(db, now):
        by_assignee[task.assigned_to].append(task)

    for assignee_id, items in by_assignee.items():
        titles = ", ".join(f'"{task.title}"' for task in items)
        event = build_event(
            "task.overdue",
            "Overdue tasks",
            f"{len(items)} task(s) are past due: {titles}",
            "/tasks?assigned_to=" + str(assignee_id),
            [assignee_id],
        )
        if event is not None:
            publish_notification(event)
    logger.info("Sent overdue reminders to %d assignees", len(by_assignee))
    return len(by_assignee)
