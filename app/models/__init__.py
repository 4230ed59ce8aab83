from app.models.user import User, UserRole  # noqa: F401
from app.models.review import (  # noqa: F401
    Activity,
    Approval,
    ApprovalEntityType,
    ApprovalStatus,
    Document,
    DocumentStatus,
    DocumentVersion,
    POLICY_CATEGORY,
    PolicyAcceptance,
    Task,
    TaskPriority,
    TaskStatus,
)
