from __future__ import annotations

import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.errors import InvalidState, InvalidTransition
from app.metrics import TRANSITIONS
from app.models.review import (
    Approval,
    ApprovalEntityType,
    ApprovalStatus,
    Document,
    DocumentStatus,
    DocumentVersion,
)
from app.schemas.documents import DocumentCreate, DocumentUpdate
from app.services import audit, version_store
from app.services.approval_router import approval_router
from app.services.approver_policy import get_approver_policy
from app.services.common import (
    apply_ordering,
    apply_pagination,
    coerce_uuid,
    touch,
)
from app.services.notification import NotificationEvent, build_event
from app.services.permissions import Actor, Capability, authorize
from app.services.response import ListResponseMixin
from app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

# Every edge of the document state machine, keyed by the action that takes it.
TRANSITIONS_BY_ACTION: dict[str, dict[DocumentStatus, DocumentStatus]] = {
    "submit": {
        DocumentStatus.draft: DocumentStatus.pending,
        DocumentStatus.rejected: DocumentStatus.pending,
    },
    "resubmit": {DocumentStatus.rejected: DocumentStatus.pending},
    "approve": {DocumentStatus.pending: DocumentStatus.approved},
    "reject": {DocumentStatus.pending: DocumentStatus.rejected},
    "amend": {DocumentStatus.approved: DocumentStatus.draft},
}

NULLABLE_FIELDS = frozenset({"description", "file_url"})


def _approval_type(doc: Document) -> ApprovalEntityType:
    if doc.is_policy:
        return ApprovalEntityType.policy
    return ApprovalEntityType.document


def _kind(doc: Document) -> str:
    return _approval_type(doc).value


def _target_state(doc: Document, action: str) -> DocumentStatus:
    edges = TRANSITIONS_BY_ACTION[action]
    target = edges.get(doc.status)
    if target is None:
        # Name the state the action would lead to from its usual source
        requested = next(iter(edges.values()))
        raise InvalidTransition(_kind(doc), doc.id, doc.status, requested)
    return target


def _link(doc: Document) -> str:
    return f"/documents/{doc.id}"


def _queue(outbox: list[NotificationEvent], event: NotificationEvent | None) -> None:
    if event is not None:
        outbox.append(event)


class Documents(ListResponseMixin):
    @staticmethod
    def get(db: Session, document_id: str) -> Document:
        doc = db.get(Document, coerce_uuid(document_id))
        if not doc or not doc.is_active:
            raise HTTPException(status_code=404, detail="Document not found")
        return doc

    @staticmethod
    def list(
        db: Session,
        status: str | None,
        category: str | None,
        department: str | None,
        created_by: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Document]:
        query = db.query(Document).filter(Document.is_active.is_(True))
        if status:
            try:
                query = query.filter(Document.status == DocumentStatus(status))
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
        if category:
            query = query.filter(Document.category == category)
        if department:
            query = query.filter(Document.department == department)
        if created_by:
            query = query.filter(Document.created_by == coerce_uuid(created_by))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {
                "created_at": Document.created_at,
                "updated_at": Document.updated_at,
                "title": Document.title,
            },
        )
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def versions(db: Session, document_id: str) -> list[DocumentVersion]:
        doc = Documents.get(db, document_id)
        return version_store.list_versions(db, doc.id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    def create(db: Session, actor: Actor, payload: DocumentCreate) -> Document:
        data = payload.model_dump()
        with unit_of_work(db, "document") as outbox:
            doc = Document(
                **data,
                version="1.0",
                status=DocumentStatus.draft,
                created_by=actor.id,
            )
            db.add(doc)
            db.flush()
            version_store.snapshot(db, doc.id, doc.content, doc.version, actor.id)
            audit.record(
                db,
                actor.id,
                "created",
                _kind(doc),
                doc.id,
                {"title": doc.title, "version": doc.version},
            )
            _queue(
                outbox,
                build_event(
                    f"{_kind(doc)}.created",
                    "Document created",
                    f'"{doc.title}" was created as a draft',
                    _link(doc),
                    [doc.created_by],
                ),
            )
        db.refresh(doc)
        TRANSITIONS.labels(entity_type="document", action="created").inc()
        logger.info("Created document %s", doc.id)
        return doc

    @staticmethod
    def update(
        db: Session, actor: Actor, document_id: str, payload: DocumentUpdate
    ) -> Document:
        doc = Documents.get(db, document_id)
        authorize(
            actor,
            Capability.edit_any_document,
            owner_id=doc.created_by,
            entity_type=_kind(doc),
            entity_id=doc.id,
        )
        if doc.status != DocumentStatus.draft:
            raise InvalidState(
                _kind(doc),
                doc.id,
                doc.status,
                "Documents can only be edited while in draft",
            )

        data = payload.model_dump(exclude_unset=True)
        new_content = data.pop("content", None)
        data = {
            key: value
            for key, value in data.items()
            if value is not None or key in NULLABLE_FIELDS
        }
        content_changed = new_content is not None and new_content != doc.content

        with unit_of_work(db, "document", doc.id) as outbox:
            previous = doc.version
            for key, value in data.items():
                setattr(doc, key, value)
            if content_changed:
                doc.content = new_content
                doc.version = version_store.next_minor(doc.version)
                doc.has_unversioned_changes = False
            touch(doc)
            # Row version check happens here, before the snapshot insert
            db.flush()
            if content_changed:
                version_store.snapshot(db, doc.id, doc.content, doc.version, actor.id)
            audit.record(
                db,
                actor.id,
                "updated",
                _kind(doc),
                doc.id,
                {
                    "fields": sorted(data) + (["content"] if content_changed else []),
                    "from_version": previous,
                    "version": doc.version,
                },
            )
            _queue(
                outbox,
                build_event(
                    f"{_kind(doc)}.updated",
                    "Document updated",
                    f'"{doc.title}" is now at v{doc.version}',
                    _link(doc),
                    [doc.created_by],
                    exclude=actor.id,
                ),
            )
        db.refresh(doc)
        TRANSITIONS.labels(entity_type="document", action="updated").inc()
        logger.info("Updated document %s", doc.id)
        return doc

    @staticmethod
    def _open_review(
        db: Session,
        actor: Actor,
        doc: Document,
        outbox: list[NotificationEvent],
        action: str,
        bump: bool,
    ) -> None:
        approval_type = _approval_type(doc)
        target = _target_state(doc, "resubmit" if action == "resubmitted" else "submit")
        approvers = get_approver_policy().approvers(db, approval_type, doc)
        if not approvers:
            raise InvalidState(
                _kind(doc),
                doc.id,
                doc.status,
                "No approvers are available for this submission",
            )

        previous_status = doc.status
        if bump:
            doc.version = version_store.next_minor(doc.version)
        doc.has_unversioned_changes = False
        doc.status = target
        touch(doc)
        db.flush()
        if bump:
            version_store.snapshot(db, doc.id, doc.content, doc.version, actor.id)
        approval_router.open_round(db, approval_type, doc.id, approvers)
        audit.record(
            db,
            actor.id,
            action,
            _kind(doc),
            doc.id,
            {
                "from": previous_status,
                "to": doc.status,
                "version": doc.version,
                "approvers": approvers,
            },
        )
        _queue(
            outbox,
            build_event(
                f"{_kind(doc)}.{action}",
                "Review requested",
                f'"{doc.title}" (v{doc.version}) is awaiting your review',
                _link(doc),
                approvers,
            ),
        )

    @staticmethod
    def submit(db: Session, actor: Actor, document_id: str) -> Document:
        doc = Documents.get(db, document_id)
        authorize(
            actor,
            Capability.submit_any_document,
            owner_id=doc.created_by,
            entity_type=_kind(doc),
            entity_id=doc.id,
        )
        _target_state(doc, "submit")
        bump = doc.status == DocumentStatus.rejected or doc.has_unversioned_changes

        with unit_of_work(db, "document", doc.id) as outbox:
            Documents._open_review(db, actor, doc, outbox, "submitted", bump)
        db.refresh(doc)
        TRANSITIONS.labels(entity_type="document", action="submitted").inc()
        logger.info("Submitted document %s at version %s", doc.id, doc.version)
        return doc

    @staticmethod
    def resubmit(
        db: Session, actor: Actor, document_id: str, content: str
    ) -> Document:
        doc = Documents.get(db, document_id)
        authorize(
            actor,
            Capability.submit_any_document,
            owner_id=doc.created_by,
            entity_type=_kind(doc),
            entity_id=doc.id,
        )
        _target_state(doc, "resubmit")

        with unit_of_work(db, "document", doc.id) as outbox:
            doc.content = content
            Documents._open_review(db, actor, doc, outbox, "resubmitted", True)
        db.refresh(doc)
        TRANSITIONS.labels(entity_type="document", action="resubmitted").inc()
        logger.info("Resubmitted document %s at version %s", doc.id, doc.version)
        return doc

    @staticmethod
    def amend(db: Session, actor: Actor, document_id: str, content: str) -> Document:
        """Reopen an approved document as draft with new content.

        The version label is left alone; the next submit bumps it.
        """
        doc = Documents.get(db, document_id)
        authorize(
            actor,
            Capability.amend_document,
            owner_id=doc.created_by,
            entity_type=_kind(doc),
            entity_id=doc.id,
        )
        target = _target_state(doc, "amend")

        with unit_of_work(db, "document", doc.id) as outbox:
            previous_status = doc.status
            doc.content = content
            doc.has_unversioned_changes = True
            doc.status = target
            touch(doc)
            db.flush()
            audit.record(
                db,
                actor.id,
                "amended",
                _kind(doc),
                doc.id,
                {"from": previous_status, "to": doc.status, "version": doc.version},
            )
            _queue(
                outbox,
                build_event(
                    f"{_kind(doc)}.amended",
                    "Document reopened",
                    f'"{doc.title}" was reopened for editing',
                    _link(doc),
                    [doc.created_by],
                    exclude=actor.id,
                ),
            )
        db.refresh(doc)
        TRANSITIONS.labels(entity_type="document", action="amended").inc()
        logger.info("Amended document %s", doc.id)
        return doc

    @staticmethod
    def resolve(
        db: Session,
        actor: Actor,
        approval_id: str,
        decision,
        comments: str | None = None,
    ) -> Document:
        approval = approval_router.get(db, approval_id)
        if approval.entity_type == ApprovalEntityType.task:
            raise HTTPException(
                status_code=400, detail="Approval does not belong to a document"
            )
        approval = approval_router.resolve(db, actor, approval.id, decision, comments)
        doc = db.get(Document, approval.entity_id)
        db.refresh(doc)
        return doc

    @staticmethod
    def on_approval_resolved(
        db: Session,
        actor: Actor,
        approval: Approval,
        outbox: list[NotificationEvent],
    ) -> Document:
        """Advance the document after one of its approvals was decided."""
        doc = db.get(Document, approval.entity_id)
        if not doc:
            raise HTTPException(status_code=404, detail="Document not found")
        if doc.status != DocumentStatus.pending:
            raise InvalidState(
                _kind(doc), doc.id, doc.status, "Document is not awaiting review"
            )

        previous_status = doc.status
        remaining: list[Approval] = []
        if approval.status == ApprovalStatus.rejected:
            doc.status = _target_state(doc, "reject")
            closed = approval_router.close_round(db, approval.entity_type, doc.id)
            action = "rejected"
            details = {"closed_approvals": [a.id for a in closed]}
        else:
            remaining = approval_router.pending_for(db, approval.entity_type, doc.id)
            if not remaining:
                doc.status = _target_state(doc, "approve")
            action = "approved"
            details = {"remaining_approvals": len(remaining)}

        # Always bump the row so concurrent decisions on one document serialize
        touch(doc)
        db.flush()
        audit.record(
            db,
            actor.id,
            action,
            _kind(doc),
            doc.id,
            {
                "approval_id": approval.id,
                "comments": approval.comments,
                "from": previous_status,
                "to": doc.status,
                **details,
            },
        )
        if doc.status != previous_status:
            event = build_event(
                f"{_kind(doc)}.{doc.status.value}",
                f"Document {doc.status.value}",
                f'"{doc.title}" (v{doc.version}) was {doc.status.value}',
                _link(doc),
                [doc.created_by],
                exclude=actor.id,
            )
        else:
            event = build_event(
                f"{_kind(doc)}.approval_recorded",
                "Approval recorded",
                f'"{doc.title}" (v{doc.version}) has {len(remaining)} '
                "approval(s) outstanding",
                _link(doc),
                [doc.created_by],
                exclude=actor.id,
            )
        _queue(outbox, event)
        return doc

    @staticmethod
    def delete(db: Session, actor: Actor, document_id: str) -> None:
        doc = Documents.get(db, document_id)
        authorize(
            actor,
            Capability.delete_document,
            entity_type=_kind(doc),
            entity_id=doc.id,
        )
        with unit_of_work(db, "document", doc.id) as outbox:
            doc.is_active = False
            touch(doc)
            db.flush()
            approval_router.close_round(
                db,
                _approval_type(doc),
                doc.id,
                comment="Closed without decision: the document was deleted",
            )
            audit.record(
                db, actor.id, "deleted", _kind(doc), doc.id, {"status": doc.status}
            )
            _queue(
                outbox,
                build_event(
                    f"{_kind(doc)}.deleted",
                    "Document deleted",
                    f'"{doc.title}" was deleted',
                    None,
                    [doc.created_by],
                    exclude=actor.id,
                ),
            )
        TRANSITIONS.labels(entity_type="document", action="deleted").inc()
        logger.info("Soft-deleted document %s", document_id)


documents = Documents()
