"""Role capability table.

Every ownership-or-role check in the engine goes through ``authorize`` so the
rules live in one place.
"""

import enum
import logging
import uuid
from dataclasses import dataclass

from app.errors import Forbidden
from app.models.user import UserRole

logger = logging.getLogger(__name__)

Role = UserRole


class Capability(enum.Enum):
    edit_any_document = "edit_any_document"
    submit_any_document = "submit_any_document"
    amend_document = "amend_document"
    override_approval = "override_approval"
    manage_any_task = "manage_any_task"
    view_acceptances = "view_acceptances"
    delete_document = "delete_document"


CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.admin: frozenset(Capability),
    Role.manager: frozenset(Capability),
    Role.coordinator: frozenset(
        {
            Capability.edit_any_document,
            Capability.manage_any_task,
            Capability.view_acceptances,
        }
    ),
    Role.analyst: frozenset(),
    Role.operator: frozenset(),
}


@dataclass(frozen=True)
class Actor:
    id: uuid.UUID
    role: Role
    department: str

    @classmethod
    def from_user(cls, user) -> "Actor":
        return cls(id=user.id, role=user.role, department=user.department)


def can(actor: Actor, capability: Capability, owner_id=None) -> bool:
    if owner_id is not None and owner_id == actor.id:
        return True
    return capability in CAPABILITIES.get(actor.role, frozenset())


def authorize(
    actor: Actor,
    capability: Capability,
    owner_id=None,
    entity_type: str | None = None,
    entity_id=None,
) -> None:
    if can(actor, capability, owner_id):
        return
    logger.info(
        "Denied %s to actor %s (%s)", capability.value, actor.id, actor.role.value
    )
    raise Forbidden(
        actor.id,
        actor.role,
        capability.value,
        entity_type=entity_type,
        entity_id=entity_id,
    )
