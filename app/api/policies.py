from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor, get_db
from app.schemas.policies import PolicyAcceptanceRead
from app.services.permissions import Actor
from app.services.policies import policies as policy_service

router = APIRouter(prefix="/policies", tags=["policies"])


@router.post("/{document_id}/accept", response_model=PolicyAcceptanceRead)
def accept_policy(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return policy_service.accept(db, actor, document_id)


@router.get(
    "/{document_id}/acceptances", response_model=list[PolicyAcceptanceRead]
)
def list_policy_acceptances(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return policy_service.acceptances(db, actor, document_id)
