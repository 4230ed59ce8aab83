import uuid
from datetime import datetime, timezone

from fastapi import HTTPException

from app.models.review import as_utc


def coerce_uuid(value):
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid id: {value}")


def apply_ordering(query, order_by, order_dir, allowed_columns):
    if order_by not in allowed_columns:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}",
        )
    column = allowed_columns[order_by]
    if order_dir == "desc":
        return query.order_by(column.desc())
    return query.order_by(column.asc())


def apply_pagination(query, limit, offset):
    return query.limit(limit).offset(offset)


def touch(entity) -> datetime:
    """Advance ``updated_at`` without ever moving it backwards."""
    now = datetime.now(timezone.utc)
    current = entity.updated_at
    if current is not None and as_utc(current) > now:
        now = as_utc(current)
    entity.updated_at = now
    return now
