import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _resolve_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    environment = os.getenv("ENVIRONMENT", "").strip().lower()
    if environment == "development":
        return "postgresql+psycopg://localhost:5434/review_engine"

    raise ValueError(
        "DATABASE_URL is not set. Set DATABASE_URL for non-development "
        "environments or set ENVIRONMENT=development for local defaults."
    )


def _to_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = _resolve_database_url()
    db_pool_size: int = int(os.getenv("DB_POOL_SIZE", "5"))
    db_max_overflow: int = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    db_pool_timeout: int = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    db_pool_recycle: int = int(os.getenv("DB_POOL_RECYCLE", "1800"))
    # Upper bound for a single statement; surfaced as StorageUnavailable
    db_statement_timeout_ms: int = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "5000"))

    # Celery
    celery_broker_url: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    celery_result_backend: str = os.getenv(
        "CELERY_RESULT_BACKEND", "redis://localhost:6379/1"
    )
    celery_task_always_eager: bool = _to_bool(
        os.getenv("CELERY_TASK_ALWAYS_EAGER", "false")
    )

    # Workflow
    approver_roles: str = os.getenv("APPROVER_ROLES", "manager,admin")
    overdue_check_interval_seconds: int = int(
        os.getenv("OVERDUE_CHECK_INTERVAL_SECONDS", "3600")
    )

    # Notification dispatch
    notification_webhook_url: str = os.getenv("NOTIFICATION_WEBHOOK_URL", "")
    notification_webhook_secret: str = os.getenv("NOTIFICATION_WEBHOOK_SECRET", "")
    notification_timeout_seconds: float = float(
        os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "10")
    )

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv(
        "LOG_FORMAT", "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )

    # Branding
    brand_name: str = os.getenv("BRAND_NAME", "Document Review")

    @property
    def approver_role_list(self) -> list[str]:
        return [r.strip() for r in self.approver_roles.split(",") if r.strip()]


settings = Settings()
