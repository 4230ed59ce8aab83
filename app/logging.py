import logging

from app.config import settings

_configured = False


def configure_logging() -> None:
    """Configure root logging once per process from settings."""
    global _configured
    if _configured:
        return
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=settings.log_format)
    # SQL echo is noisy at INFO; callers can lower it explicitly.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True
