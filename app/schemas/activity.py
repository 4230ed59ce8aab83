from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ActivityRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    action: str
    entity_type: str
    entity_id: UUID
    details: dict | None = None
    created_at: datetime


class DashboardStats(BaseModel):
    documents_by_status: dict[str, int]
    open_tasks: int
    overdue_tasks: int
    pending_approvals: int
