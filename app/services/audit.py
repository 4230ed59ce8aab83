import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.models.review import Activity
from app.models.user import User
from app.services.common import coerce_uuid

logger = logging.getLogger(__name__)


def _plain(value):
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "value"):
        return value.value
    return str(value)


def record(
    db: Session,
    actor_id,
    action: str,
    entity_type: str,
    entity_id,
    details: dict | None = None,
) -> Activity:
    """Append-only audit entry, flushed into the caller's transaction."""
    actor_id = coerce_uuid(actor_id)
    if not db.get(User, actor_id):
        raise HTTPException(status_code=404, detail="Actor not found")
    activity = Activity(
        user_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=coerce_uuid(entity_id),
        details=_plain(details) if details else None,
    )
    db.add(activity)
    db.flush()
    logger.info("Recorded %s on %s %s by %s", action, entity_type, entity_id, actor_id)
    return activity


def recent(db: Session, limit: int = 20, offset: int = 0) -> list[Activity]:
    return (
        db.query(Activity)
        .order_by(Activity.created_at.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )


def for_entity(
    db: Session,
    entity_type: str,
    entity_id,
    limit: int | None = None,
    offset: int = 0,
) -> list[Activity]:
    query = (
        db.query(Activity)
        .filter(
            Activity.entity_type == entity_type,
            Activity.entity_id == coerce_uuid(entity_id),
        )
        .order_by(Activity.created_at.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.offset(offset).all()
