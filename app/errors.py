import logging

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.metrics import ERRORS

logger = logging.getLogger(__name__)


def _error_payload(code: str, message: str, details):
    return {"code": code, "message": message, "details": details}


# ---------------------------------------------------------------------------
# Workflow errors
# ---------------------------------------------------------------------------


class WorkflowError(HTTPException):
    """Base for engine errors.

    ``detail`` is always the structured ``{code, message, details}`` envelope so
    the HTTP layer and direct callers see the same payload.
    """

    status_code = 409
    code = "workflow_error"

    def __init__(self, message: str, **details):
        self.message = message
        self.details = {k: _stringify(v) for k, v in details.items()}
        super().__init__(
            status_code=self.status_code,
            detail=_error_payload(self.code, message, self.details),
        )


def _stringify(value):
    if value is None or isinstance(value, (str, int, float, bool, list, dict)):
        return value
    if hasattr(value, "value"):
        return value.value
    return str(value)


class InvalidTransition(WorkflowError):
    code = "invalid_transition"

    def __init__(self, entity_type: str, entity_id, current, requested):
        super().__init__(
            f"Cannot move {entity_type} from {_stringify(current)} to "
            f"{_stringify(requested)}",
            entity_type=entity_type,
            entity_id=entity_id,
            current_state=current,
            requested_state=requested,
        )


class InvalidState(WorkflowError):
    code = "invalid_state"

    def __init__(self, entity_type: str, entity_id, current, message: str):
        super().__init__(
            message,
            entity_type=entity_type,
            entity_id=entity_id,
            current_state=current,
        )


class Forbidden(WorkflowError):
    status_code = 403
    code = "forbidden"

    def __init__(self, actor_id, role, capability: str, entity_type=None, entity_id=None):
        super().__init__(
            f"Role {_stringify(role)} may not {capability}",
            actor_id=actor_id,
            role=role,
            capability=capability,
            entity_type=entity_type,
            entity_id=entity_id,
        )


class Conflict(WorkflowError):
    code = "conflict"

    def __init__(self, entity_type: str, entity_id, message: str | None = None):
        super().__init__(
            message
            or f"{entity_type} {entity_id} was modified concurrently; re-read and retry",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class VersionConflict(WorkflowError):
    code = "version_conflict"

    def __init__(self, document_id, requested: str, latest: str | None):
        super().__init__(
            f"Version {requested} is not newer than {latest}; refresh the document",
            entity_type="document",
            entity_id=document_id,
            requested_version=requested,
            latest_version=latest,
        )


class AlreadyResolved(WorkflowError):
    code = "already_resolved"

    def __init__(self, approval_id, current):
        super().__init__(
            f"Approval is already {_stringify(current)}",
            entity_type="approval",
            entity_id=approval_id,
            current_state=current,
        )


class StorageUnavailable(WorkflowError):
    status_code = 503
    code = "storage_unavailable"

    def __init__(self, entity_type: str | None = None, entity_id=None, reason: str = ""):
        super().__init__(
            "Storage is unavailable; no changes were applied",
            entity_type=entity_type,
            entity_id=entity_id,
            reason=reason,
        )


class Unauthenticated(WorkflowError):
    status_code = 401
    code = "unauthenticated"

    def __init__(self, message: str = "Actor could not be resolved"):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def register_error_handlers(app) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        detail = exc.detail
        code = f"http_{exc.status_code}"
        message = "Request failed"
        details = None
        if isinstance(detail, dict):
            code = detail.get("code", code)
            message = detail.get("message", message)
            details = detail.get("details")
        elif isinstance(detail, str):
            message = detail
        else:
            details = detail
        ERRORS.labels(code=code).inc()
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(code, message, details),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        # ctx may contain raw Exception objects (not JSON-serialisable).
        errors = [
            {k: str(v) if k == "ctx" else v for k, v in err.items() if k != "url"}
            for err in exc.errors()
        ]
        ERRORS.labels(code="validation_error").inc()
        return JSONResponse(
            status_code=422,
            content=_error_payload("validation_error", "Validation error", errors),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        ERRORS.labels(code="internal_error").inc()
        return JSONResponse(
            status_code=500,
            content=_error_payload("internal_error", "Internal server error", None),
        )
