import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.errors import Conflict, StorageUnavailable
from app.services.notification import NotificationEvent, publish_notification

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(
    db: Session, entity_type: str | None = None, entity_id=None
) -> Iterator[list[NotificationEvent]]:
    """Run one engine operation as a single commit.

    Yields an outbox list. Events appended to it are published only once the
    commit has succeeded. Any failure rolls the whole unit back.
    """
    outbox: list[NotificationEvent] = []
    try:
        yield outbox
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.info("Stale write on %s %s: %s", entity_type, entity_id, e)
        raise Conflict(entity_type or "entity", entity_id) from e
    except sa_exc.IntegrityError as e:
        db.rollback()
        logger.info("Integrity conflict on %s %s: %s", entity_type, entity_id, e.orig)
        raise Conflict(
            entity_type or "entity",
            entity_id,
            "A concurrent change already created this record; re-read and retry",
        ) from e
    except (sa_exc.OperationalError, sa_exc.DBAPIError, sa_exc.TimeoutError) as e:
        db.rollback()
        logger.exception("Storage failure on %s %s", entity_type, entity_id)
        raise StorageUnavailable(entity_type, entity_id, reason=type(e).__name__) from e
    except Exception:
        db.rollback()
        raise

    for event in outbox:
        publish_notification(event)
