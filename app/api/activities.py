from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor, get_db
from app.schemas.activity import ActivityRead, DashboardStats
from app.services import audit, queries
from app.services.permissions import Actor

router = APIRouter(tags=["activities"])


@router.get("/activities", response_model=list[ActivityRead])
def list_activities(
    entity_type: str | None = None,
    entity_id: str | None = None,
    limit: int = Query(default=20, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    if entity_type and entity_id:
        return audit.for_entity(db, entity_type, entity_id, limit, offset)
    return queries.recent_activities(db, limit, offset)


@router.get("/dashboard/stats", response_model=DashboardStats)
def dashboard_stats(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return queries.dashboard_stats(db)
