from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.review import DocumentStatus


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class DocumentBase(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    content: str
    category: str = Field(min_length=1, max_length=120)
    department: str = Field(min_length=1, max_length=120)
    tags: list[str] = Field(default_factory=list)
    file_url: str | None = None


class DocumentCreate(DocumentBase):
    pass


class DocumentUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    content: str | None = None
    category: str | None = Field(default=None, min_length=1, max_length=120)
    department: str | None = Field(default=None, min_length=1, max_length=120)
    tags: list[str] | None = None
    file_url: str | None = None


class DocumentContentRequest(BaseModel):
    """Body for resubmit and amend, which both replace the content."""

    content: str


class DocumentRead(DocumentBase):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    version: str
    status: DocumentStatus
    has_unversioned_changes: bool
    created_by: UUID
    is_active: bool
    row_version: int
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# DocumentVersion
# ---------------------------------------------------------------------------


class DocumentVersionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    version: str
    content: str
    created_by: UUID
    created_at: datetime
