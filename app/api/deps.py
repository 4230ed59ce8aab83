from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.errors import Unauthenticated
from app.models.user import User
from app.services.common import coerce_uuid
from app.services.permissions import Actor

ACTOR_HEADER = "X-Actor-Id"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_actor(
    x_actor_id: str | None = Header(default=None, alias=ACTOR_HEADER),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the identity supplied by the upstream auth gateway."""
    if not x_actor_id:
        raise Unauthenticated(f"Missing {ACTOR_HEADER} header")
    try:
        user_id = coerce_uuid(x_actor_id)
    except HTTPException:
        raise Unauthenticated(f"Malformed {ACTOR_HEADER} header")
    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise Unauthenticated("Unknown or inactive actor")
    return Actor.from_user(user)
