import logging
import uuid
from typing import Protocol

from sqlalchemy.orm import Session

from app.config import settings
from app.models.review import ApprovalEntityType
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


class ApproverPolicy(Protocol):
    def approvers(
        self, db: Session, entity_type: ApprovalEntityType, entity
    ) -> list[uuid.UUID]: ...


class RoleApproverPolicy:
    """Every active user holding one of the configured approver roles."""

    def __init__(self, roles: list[str] | None = None):
        names = roles if roles is not None else settings.approver_role_list
        self.roles = [UserRole(name) for name in names]

    def approvers(
        self, db: Session, entity_type: ApprovalEntityType, entity
    ) -> list[uuid.UUID]:
        rows = (
            db.query(User.id)
            .filter(User.role.in_(self.roles), User.is_active.is_(True))
            .order_by(User.name.asc(), User.id.asc())
            .all()
        )
        return [row.id for row in rows]


_policy: ApproverPolicy | None = None


def get_approver_policy() -> ApproverPolicy:
    global _policy
    if _policy is None:
        _policy = RoleApproverPolicy()
    return _policy


def set_approver_policy(policy: ApproverPolicy | None) -> None:
    """Swap the approver policy; ``None`` restores the role-based default."""
    global _policy
    _policy = policy
    logger.info("Approver policy set to %s", type(policy).__name__ if policy else "default")
