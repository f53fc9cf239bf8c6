"""Domain errors shared by the server services and the client library.

Every error carries the HTTP status and the `error` code used in the pinned
ErrorResponse shape, so routers can let them propagate and the registered
exception handler renders them.
"""

from __future__ import annotations


class BookmarkError(Exception):
    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str, *, details: object | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class UnauthorizedError(BookmarkError):
    status_code = 401
    error = "unauthorized"


class ForbiddenError(BookmarkError):
    status_code = 403
    error = "forbidden"


class NotFoundError(BookmarkError):
    status_code = 404
    error = "not_found"


class ValidationError(BookmarkError):
    status_code = 400
    error = "validation_error"


class ConflictError(BookmarkError):
    status_code = 409
    error = "conflict"


class PersistenceFault(BookmarkError):
    status_code = 500
    error = "persistence_fault"
