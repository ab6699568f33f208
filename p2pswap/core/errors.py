"""
Typed error taxonomy shared by the core services and the HTTP layer.

Services raise these; ``p2pswap.main`` renders them as JSON responses.
Each class carries the HTTP status it maps to and a stable ``kind`` string.
"""

from __future__ import annotations

from fastapi import status
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError


class AppError(Exception):
    """Base class for every user-facing failure."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind: str = "error"

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.message = message
        self.errors = errors


class ValidationError(AppError):
    """Malformed or out-of-range input."""

    status_code = status.HTTP_400_BAD_REQUEST
    kind = "validation_error"


class AuthenticationError(AppError):
    """Missing or invalid caller identity."""

    status_code = status.HTTP_401_UNAUTHORIZED
    kind = "authentication_error"


class AuthorizationError(AppError):
    """Authenticated, but not permitted to act on this resource."""

    status_code = status.HTTP_403_FORBIDDEN
    kind = "authorization_error"


class NotFoundError(AppError):
    """Referenced listing or match does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    kind = "not_found"


class ConflictError(AppError):
    """A state precondition was violated (wrong status, duplicate live match...)."""

    status_code = status.HTTP_400_BAD_REQUEST
    kind = "conflict"


class ConcurrencyConflictError(ConflictError):
    """Lost a race against a concurrent request; the caller may retry."""

    status_code = status.HTTP_409_CONFLICT
    kind = "concurrency_conflict"


class UnexpectedError(AppError):
    """Storage or infrastructure failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "unexpected_error"


# ---------------------------------------------------------------------------
# Input validation helpers
# ---------------------------------------------------------------------------


_LOCATION_PREFIXES = ("body", "query", "path", "header")


def field_issues(exc) -> list[dict]:
    """
    Flatten a pydantic (or FastAPI request) validation error into
    ``[{"field": ..., "message": ...}]``.
    """
    issues = []
    for err in exc.errors():
        field = ".".join(
            str(part) for part in err.get("loc", ()) if part not in _LOCATION_PREFIXES
        )
        issues.append({"field": field or None, "message": err.get("msg", "Invalid value")})
    return issues


def validate_input(model: type[BaseModel], **data) -> BaseModel:
    """
    Build a validated input model or raise ``ValidationError``.

    Used at the entry of every core operation so callers can pass
    primitives (strings, ints) and still get field-level issues back.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError("Validation failed", errors=field_issues(exc)) from exc
