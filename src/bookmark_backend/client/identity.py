from __future__ import annotations

from typing import Protocol


class IdentityProvider(Protocol):
    """Source of the signed-in user's id on the client side."""

    def current_owner_id(self) -> int | None: ...


class StaticIdentity:
    def __init__(self, owner_id: int | None) -> None:
        self._owner_id = owner_id

    def current_owner_id(self) -> int | None:
        return self._owner_id

    def sign_out(self) -> None:
        self._owner_id = None
