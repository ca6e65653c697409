# gigchain/errors.py
# Domain error taxonomy and the FastAPI handler that renders it.
#
# Every error carries a machine-readable `code`, a human-readable message and
# a context dict (entity id, expected vs. actual status, ...) so clients can
# decide whether to retry. The response body mirrors the `detail` dicts the
# ledger routes already return: {"detail": {"code": ..., "message": ..., ...}}.

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DomainError(Exception):
    status_code = 500
    default_code = "internal_error"

    def __init__(self, message: str, *, code: Optional[str] = None, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context: Dict[str, Any] = context

    def to_detail(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update({k: v for k, v in self.context.items() if v is not None})
        return detail


class ValidationError(DomainError):
    """Missing or malformed request fields; raised before any external call."""

    status_code = 400
    default_code = "validation_error"


class AuthorizationError(DomainError):
    """Caller is not the owner / participant / invitee for the action."""

    status_code = 403
    default_code = "forbidden"


class NotFoundError(DomainError):
    status_code = 404
    default_code = "not_found"


class StateConflictError(DomainError):
    """Action is invalid for the entity's current status, or a uniqueness rule was hit."""

    status_code = 409
    default_code = "state_conflict"


class ExternalOperationError(DomainError):
    """The ledger or indexer rejected / failed an operation. Never retried here."""

    status_code = 502
    default_code = "external_operation_failed"


class ResolutionTimeout(DomainError):
    """The confirmation resolver exhausted its attempt budget."""

    status_code = 504
    default_code = "resolution_timeout"


def expect_status(entity: str, entity_id: str, actual: Optional[str], *allowed: str) -> None:
    """Raise StateConflictError unless `actual` is one of `allowed`."""
    if actual not in allowed:
        raise StateConflictError(
            f"{entity} {entity_id} is {actual}, expected {' or '.join(allowed)}",
            entity_id=entity_id,
            expected=list(allowed),
            actual=actual,
        )


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)
