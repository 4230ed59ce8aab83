from celery import Celery

from app.config import settings

celery_app = Celery(
    "review_engine",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.tasks.notifications", "app.tasks.overdue"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.celery_task_always_eager,
    beat_schedule={
        "notify-overdue-tasks": {
            "task": "app.tasks.overdue.notify_overdue_tasks",
            "schedule": float(settings.overdue_check_interval_seconds),
        },
    },
)
