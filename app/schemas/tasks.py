from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.review import TaskPriority, TaskStatus


class TaskBase(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    assigned_to: UUID
    document_id: UUID | None = None
    priority: TaskPriority = TaskPriority.medium
    due_date: datetime | None = None


class TaskCreate(TaskBase):
    pass


class TaskTransitionRequest(BaseModel):
    status: TaskStatus
    comments: str | None = None


class TaskRead(TaskBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    assigned_by: UUID
    status: TaskStatus
    completed_at: datetime | None = None
    is_overdue: bool = False
    row_version: int
    created_at: datetime
    updated_at: datetime
