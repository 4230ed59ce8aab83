"""Immutable content snapshots for documents.

Labels are compared with a key function; the default orders numeric-dotted
labels component by component so that "1.2" < "1.10".
"""

import logging
import re
from typing import Callable

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.errors import VersionConflict
from app.models.review import DocumentVersion
from app.services.common import coerce_uuid

logger = logging.getLogger(__name__)

_LABEL_RE = re.compile(r"^\d+(\.\d+)*$")


def version_key(label: str) -> tuple[int, ...]:
    if not _LABEL_RE.match(label or ""):
        raise HTTPException(status_code=400, detail=f"Invalid version label: {label}")
    return tuple(int(part) for part in label.split("."))


def next_minor(label: str) -> str:
    parts = list(version_key(label))
    if len(parts) == 1:
        parts.append(0)
    parts[-1] += 1
    return ".".join(str(part) for part in parts)


def list_versions(
    db: Session, document_id, key: Callable[[str], tuple] = version_key
) -> list[DocumentVersion]:
    """Newest first."""
    rows = (
        db.query(DocumentVersion)
        .filter(DocumentVersion.document_id == coerce_uuid(document_id))
        .all()
    )
    return sorted(rows, key=lambda row: key(row.version), reverse=True)


def latest(
    db: Session, document_id, key: Callable[[str], tuple] = version_key
) -> DocumentVersion | None:
    rows = list_versions(db, document_id, key)
    return rows[0] if rows else None


def get(db: Session, document_id, version_id) -> DocumentVersion:
    row = db.get(DocumentVersion, coerce_uuid(version_id))
    if not row or row.document_id != coerce_uuid(document_id):
        raise HTTPException(status_code=404, detail="Document version not found")
    return row


def snapshot(
    db: Session,
    document_id,
    content: str,
    version: str,
    actor_id,
    key: Callable[[str], tuple] = version_key,
) -> DocumentVersion:
    """Append a snapshot; ``version`` must be newer than every existing label."""
    document_id = coerce_uuid(document_id)
    current = latest(db, document_id, key)
    if current is not None:
        if current.version == version or key(version) <= key(current.version):
            raise VersionConflict(document_id, version, current.version)
    else:
        key(version)

    row = DocumentVersion(
        document_id=document_id,
        version=version,
        content=content,
        created_by=coerce_uuid(actor_id),
    )
    db.add(row)
    db.flush()
    logger.info("Snapshotted document %s at version %s", document_id, version)
    return row
