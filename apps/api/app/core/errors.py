from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import HTTPException


class ErrorKind(str, Enum):
    not_found = "NotFound"
    unauthenticated = "Unauthenticated"
    forbidden = "Forbidden"
    invalid_argument = "InvalidArgument"
    conflict = "Conflict"
    invalid_state = "InvalidState"


class ServiceError(HTTPException):
    """
    Base for every failure the core surfaces to callers.

    Subclasses HTTPException so route handlers need no translation layer; the
    detail is always a dict with `kind` and `message`, plus any structured extras.
    """

    kind: ErrorKind = ErrorKind.invalid_argument
    status_code_for_kind: int = 400

    def __init__(self, message: str, **extra: Any) -> None:
        self.message = message
        self.extra = extra
        detail = {"kind": self.kind.value, "message": message, **extra}
        super().__init__(status_code=self.status_code_for_kind, detail=detail)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class NotFoundError(ServiceError):
    kind = ErrorKind.not_found
    status_code_for_kind = 404


class UnauthenticatedError(ServiceError):
    kind = ErrorKind.unauthenticated
    status_code_for_kind = 401


class ForbiddenError(ServiceError):
    kind = ErrorKind.forbidden
    status_code_for_kind = 403


class InvalidArgumentError(ServiceError):
    kind = ErrorKind.invalid_argument
    status_code_for_kind = 400


class ConflictError(ServiceError):
    kind = ErrorKind.conflict
    status_code_for_kind = 409


class InvalidStateError(ServiceError):
    kind = ErrorKind.invalid_state
    status_code_for_kind = 409
