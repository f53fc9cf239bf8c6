from __future__ import annotations

from pydantic import BaseModel


class HealthResponse(BaseModel):
    ok: bool = True


class ErrorResponse(BaseModel):
    """Pinned error contract shared by every endpoint.

    Clients branch on ``error`` (stable code) and show ``message``; ``details``
    carries structured context such as the offending entity id.
    """

    error: str
    message: str
    request_id: str | None = None
    details: object | None = None
