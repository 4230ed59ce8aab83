import logging

from sqlalchemy.orm import Session

from app.errors import Conflict, InvalidState
from app.metrics import TRANSITIONS
from app.models.review import DocumentStatus, PolicyAcceptance
from app.services import audit
from app.services.documents import documents
from app.services.notification import build_event
from app.services.permissions import Actor, Capability, authorize
from app.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)


def _existing(db: Session, user_id, document_id) -> PolicyAcceptance | None:
    return (
        db.query(PolicyAcceptance)
        .filter(
            PolicyAcceptance.user_id == user_id,
            PolicyAcceptance.document_id == document_id,
        )
        .first()
    )


class Policies:
    @staticmethod
    def accept(db: Session, actor: Actor, document_id: str) -> PolicyAcceptance:
        """Record that the actor accepted an approved policy.

        Accepting twice returns the first acceptance and writes nothing.
        """
        doc = documents.get(db, document_id)
        if not doc.is_policy:
            raise InvalidState(
                "document", doc.id, doc.status, "Only policies can be accepted"
            )
        if doc.status != DocumentStatus.approved:
            raise InvalidState(
                "policy", doc.id, doc.status, "Only approved policies can be accepted"
            )
        found = _existing(db, actor.id, doc.id)
        if found:
            return found

        try:
            with unit_of_work(db, "policy", doc.id) as outbox:
                acceptance = PolicyAcceptance(user_id=actor.id, document_id=doc.id)
                db.add(acceptance)
                db.flush()
                audit.record(
                    db,
                    actor.id,
                    "accepted",
                    "policy",
                    doc.id,
                    {"version": doc.version},
                )
                outbox.append(
                    build_event(
                        "policy.accepted",
                        "Policy accepted",
                        f'"{doc.title}" (v{doc.version}) was accepted',
                        f"/documents/{doc.id}",
                        [doc.created_by],
                        exclude=actor.id,
                    )
                )
        except Conflict:
            # Lost a race with a concurrent acceptance of the same pair
            found = _existing(db, actor.id, doc.id)
            if found:
                return found
            raise
        db.refresh(acceptance)
        TRANSITIONS.labels(entity_type="policy", action="accepted").inc()
        logger.info("User %s accepted policy %s", actor.id, doc.id)
        return acceptance

    @staticmethod
    def acceptances(
        db: Session, actor: Actor, document_id: str
    ) -> list[PolicyAcceptance]:
        doc = documents.get(db, document_id)
        authorize(
            actor,
            Capability.view_acceptances,
            entity_type="policy",
            entity_id=doc.id,
        )
        return (
            db.query(PolicyAcceptance)
            .filter(PolicyAcceptance.document_id == doc.id)
            .order_by(PolicyAcceptance.accepted_at.asc())
            .all()
        )


policies = Policies()
