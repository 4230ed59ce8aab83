from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor, get_db
from app.schemas.common import ListResponse
from app.schemas.tasks import TaskCreate, TaskRead, TaskTransitionRequest
from app.services.permissions import Actor
from app.services.tasks import tasks as task_service

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return task_service.create(db, actor, payload)


@router.get("", response_model=ListResponse[TaskRead])
def list_tasks(
    assigned_to: str | None = None,
    status: str | None = None,
    document_id: str | None = None,
    order_by: str = Query(default="created_at"),
    order_dir: str = Query(default="desc", pattern="^(asc|desc)$"),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return task_service.list_response(
        db, assigned_to, status, document_id, order_by, order_dir, limit, offset
    )


@router.get("/{task_id}", response_model=TaskRead)
def get_task(
    task_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return task_service.get(db, task_id)


@router.post("/{task_id}/transition", response_model=TaskRead)
def transition_task(
    task_id: str,
    payload: TaskTransitionRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return task_service.transition(
        db, actor, task_id, payload.status, payload.comments
    )


@router.post("/{task_id}/submit", response_model=TaskRead)
def submit_task(
    task_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return task_service.submit_for_approval(db, actor, task_id)
