"""
Error taxonomy shared by services and routes.

Every user-visible failure is an HTTPException whose detail is
{"code": <stable reason>, "message": <human text>, ...extra}. Services raise
these directly, the same way they would raise a bare HTTPException.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException


class ServiceError(HTTPException):
    http_status: int = 500
    default_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message
        self.extra = dict(extra or {})
        detail = {"code": self.code, "message": message, **self.extra}
        super().__init__(status_code=self.http_status, detail=detail)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ValidationError(ServiceError):
    """Malformed or missing input. Never logged as a system fault."""
    http_status = 400
    default_code = "validation_error"


class NotFoundError(ServiceError):
    """Entity absent, or present in another partition."""
    http_status = 404
    default_code = "not_found"


class ConflictError(ServiceError):
    http_status = 409
    default_code = "conflict"


class UpstreamUnavailable(ServiceError):
    """External source unreachable or timed out. Normally absorbed by a fallback."""
    http_status = 503
    default_code = "upstream_unavailable"


class PersistenceError(ServiceError):
    http_status = 500
    default_code = "persistence_error"


class ReconciliationConflict(ServiceError):
    """
    A later reconciliation step failed after the ledger entry was written.

    `compensated` says whether the rollback succeeded. When it is False the
    ledger may hold an orphan transaction.
    """
    http_status = 500
    default_code = "reconciliation_conflict"

    def __init__(self, message: str, *, failed_step: str, compensated: bool):
        self.failed_step = failed_step
        self.compensated = compensated
        super().__init__(
            message,
            extra={"failed_step": failed_step, "compensated": compensated},
        )
