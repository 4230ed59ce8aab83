from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor, get_db
from app.schemas.common import ListResponse
from app.schemas.documents import (
    DocumentContentRequest,
    DocumentCreate,
    DocumentRead,
    DocumentUpdate,
    DocumentVersionRead,
)
from app.services.documents import documents as document_service
from app.services.permissions import Actor

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("", response_model=DocumentRead, status_code=status.HTTP_201_CREATED)
def create_document(
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return document_service.create(db, actor, payload)


@router.get("", response_model=ListResponse[DocumentRead])
def list_documents(
    status: str | None = None,
    category: str | None = None,
    department: str | None = None,
    created_by: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return document_service.list_response(
        db, status, category, department, created_by, order_by, order_dir, limit, offset
    )


@router.get("/{document_id}", response_model=DocumentRead)
def get_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return document_service.get(db, document_id)


@router.patch("/{document_id}", response_model=DocumentRead)
def update_document(
    document_id: str,
    payload: DocumentUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return document_service.update(db, actor, document_id, payload)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    document_service.delete(db, actor, document_id)


@router.post("/{document_id}/submit", response_model=DocumentRead)
def submit_document(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return document_service.submit(db, actor, document_id)


@router.post("/{document_id}/resubmit", response_model=DocumentRead)
def resubmit_document(
    document_id: str,
    payload: DocumentContentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return document_service.resubmit(db, actor, document_id, payload.content)


@router.post("/{document_id}/amend", response_model=DocumentRead)
def amend_document(
    document_id: str,
    payload: DocumentContentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return document_service.amend(db, actor, document_id, payload.content)


@router.get("/{document_id}/versions", response_model=list[DocumentVersionRead])
def list_document_versions(
    document_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return document_service.versions(db, document_id)
