"""Approval state machine.

An approval moves from pending to approved or rejected exactly once. After a
decision is recorded the owning manager advances the parent entity in the
same unit of work.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.errors import AlreadyResolved
from app.metrics import TRANSITIONS
from app.models.review import Approval, ApprovalEntityType, ApprovalStatus
from app.services.common import apply_ordering, apply_pagination, coerce_uuid
from app.services.permissions import Actor, Capability, authorize
from app.services.response import ListResponseMixin
from app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

AUTO_CLOSE_COMMENT = "Closed without decision: the review round was rejected"


def _coerce_decision(decision) -> ApprovalStatus:
    try:
        value = ApprovalStatus(getattr(decision, "value", decision))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid decision: {decision}")
    if value == ApprovalStatus.pending:
        raise HTTPException(
            status_code=400, detail="Decision must be approved or rejected"
        )
    return value


def _resolution_handler(entity_type: ApprovalEntityType):
    if entity_type == ApprovalEntityType.task:
        from app.services.tasks import tasks

        return tasks.on_approval_resolved
    from app.services.documents import documents

    return documents.on_approval_resolved


class ApprovalRouter(ListResponseMixin):
    @staticmethod
    def get(db: Session, approval_id: str) -> Approval:
        approval = db.get(Approval, coerce_uuid(approval_id))
        if not approval:
            raise HTTPException(status_code=404, detail="Approval not found")
        return approval

    @staticmethod
    def list(
        db: Session,
        user_id: str | None,
        status: str | None,
        entity_type: str | None,
        entity_id: str | None,
        order_by: str,
        order_dir: str,
        limit: int,
        offset: int,
    ) -> list[Approval]:
        query = db.query(Approval)
        if user_id:
            query = query.filter(Approval.user_id == coerce_uuid(user_id))
        if status:
            try:
                query = query.filter(Approval.status == ApprovalStatus(status))
            except ValueError:
                raise HTTPException(status_code=400, detail=f"Invalid status: {status}")
        if entity_type:
            try:
                query = query.filter(
                    Approval.entity_type == ApprovalEntityType(entity_type)
                )
            except ValueError:
                raise HTTPException(
                    status_code=400, detail=f"Invalid entity_type: {entity_type}"
                )
        if entity_id:
            query = query.filter(Approval.entity_id == coerce_uuid(entity_id))
        query = apply_ordering(
            query,
            order_by,
            order_dir,
            {"created_at": Approval.created_at, "status": Approval.status},
        )
        return apply_pagination(query, limit, offset).all()

    @staticmethod
    def pending_for(
        db: Session, entity_type: ApprovalEntityType, entity_id
    ) -> list[Approval]:
        return (
            db.query(Approval)
            .filter(
                Approval.entity_type == entity_type,
                Approval.entity_id == coerce_uuid(entity_id),
                Approval.status == ApprovalStatus.pending,
            )
            .order_by(Approval.created_at.asc())
            .all()
        )

    @staticmethod
    def open_round(
        db: Session, entity_type: ApprovalEntityType, entity_id, approver_ids
    ) -> list[Approval]:
        """Create one pending approval per approver.

        Approvers already holding a pending approval for the entity are
        skipped, so each keeps at most one.
        """
        entity_id = coerce_uuid(entity_id)
        holding = {
            a.user_id for a in ApprovalRouter.pending_for(db, entity_type, entity_id)
        }
        created = []
        for user_id in approver_ids:
            user_id = coerce_uuid(user_id)
            if user_id in holding:
                continue
            holding.add(user_id)
            approval = Approval(
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=user_id,
                status=ApprovalStatus.pending,
            )
            db.add(approval)
            created.append(approval)
        db.flush()
        logger.info(
            "Opened %d approvals for %s %s",
            len(created),
            entity_type.value,
            entity_id,
        )
        return created

    @staticmethod
    def close_round(
        db: Session,
        entity_type: ApprovalEntityType,
        entity_id,
        comment: str = AUTO_CLOSE_COMMENT,
    ) -> list[Approval]:
        """Reject every approval still pending for the entity."""
        now = datetime.now(timezone.utc)
        closed = ApprovalRouter.pending_for(db, entity_type, entity_id)
        for approval in closed:
            approval.status = ApprovalStatus.rejected
            approval.approved_at = now
            approval.comments = comment
        db.flush()
        if closed:
            logger.info(
                "Closed %d pending approvals for %s %s",
                len(closed),
                entity_type.value,
                entity_id,
            )
        return closed

    @staticmethod
    def resolve(
        db: Session,
        actor: Actor,
        approval_id: str,
        decision,
        comments: str | None = None,
    ) -> Approval:
        decision = _coerce_decision(decision)
        approval = ApprovalRouter.get(db, approval_id)
        if approval.status != ApprovalStatus.pending:
            raise AlreadyResolved(approval.id, approval.status)
        authorize(
            actor,
            Capability.override_approval,
            owner_id=approval.user_id,
            entity_type="approval",
            entity_id=approval.id,
        )
        handler = _resolution_handler(approval.entity_type)

        with unit_of_work(db, "approval", approval.id) as outbox:
            approval.status = decision
            approval.approved_at = datetime.now(timezone.utc)
            approval.comments = comments
            db.flush()
            handler(db, actor, approval, outbox)

        db.refresh(approval)
        TRANSITIONS.labels(entity_type="approval", action=decision.value).inc()
        logger.info("Resolved approval %s as %s", approval.id, decision.value)
        return approval


approval_router = ApprovalRouter()
