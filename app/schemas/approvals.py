from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.models.review import ApprovalEntityType, ApprovalStatus


class ApprovalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: ApprovalEntityType
    entity_id: UUID
    user_id: UUID
    status: ApprovalStatus
    comments: str | None = None
    approved_at: datetime | None = None
    created_at: datetime


class ApprovalResolveRequest(BaseModel):
    decision: Literal["approved", "rejected"]
    comments: str | None = None
