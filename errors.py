"""
GTSD — Error Taxonomy
Domain error kinds shared by the science engine, plan generator and
acknowledgment flow. The HTTP layer is the only place kinds become status
codes.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    validation = "validation"
    not_found = "not_found"
    computation_failed = "computation_failed"


HTTP_STATUS_FOR_KIND = {
    ErrorKind.validation: 400,
    ErrorKind.not_found: 404,
    ErrorKind.computation_failed: 500,
}


class DomainError(Exception):
    kind: ErrorKind = ErrorKind.computation_failed

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind.value, "detail": self.message}
        if self.field:
            body["field"] = self.field
        if self.context:
            body["context"] = self.context
        return body


class ValidationError(DomainError):
    """Malformed input. The caller fixes the input; never retried automatically."""
    kind = ErrorKind.validation


class NotFoundError(DomainError):
    """Referenced profile, targets or plan is missing or no longer matches."""
    kind = ErrorKind.not_found


class ComputationFailedError(DomainError):
    kind = ErrorKind.computation_failed


# ══════════════════════════════════════════════════════════════════════════════
# RESULT TYPE
# ══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T
    ok: bool = True


@dataclass(frozen=True)
class Err:
    error: DomainError
    ok: bool = False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


Result = Union[Ok[T], Err]
