from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor, get_db
from app.schemas.approvals import ApprovalRead, ApprovalResolveRequest
from app.schemas.common import ListResponse
from app.services.approval_router import approval_router
from app.services.permissions import Actor

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("", response_model=ListResponse[ApprovalRead])
def list_approvals(
    mine: bool = True,
    status: str | None = Query(default="pending"),
    entity_type: str | None = None,
    entity_id: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="asc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return approval_router.list_response(
        db,
        actor.id if mine else None,
        status,
        entity_type,
        entity_id,
        order_by,
        order_dir,
        limit,
        offset,
    )


@router.post("/{approval_id}/resolve", response_model=ApprovalRead)
def resolve_approval(
    approval_id: str,
    payload: ApprovalResolveRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return approval_router.resolve(
        db, actor, approval_id, payload.decision, payload.comments
    )
