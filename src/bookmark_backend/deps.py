from __future__ import annotations

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from bookmark_backend.db import get_session
from bookmark_backend.errors import ForbiddenError, UnauthorizedError
from bookmark_backend.models import User

_bearer = HTTPBearer(auto_error=False)


async def _resolve_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None,
    session: AsyncSession,
) -> User | None:
    raw_token = creds.credentials if creds is not None else None
    if not raw_token or not raw_token.strip():
        return None

    token = raw_token.strip()
    user = (await session.exec(select(User).where(User.api_token == token))).first()
    if user is None:
        raise UnauthorizedError("invalid token")
    if not user.is_active:
        raise ForbiddenError("user disabled")
    if user.id is None:
        raise UnauthorizedError("user missing id")

    # Stash auth context for request-scoped logging.
    request.state.auth_user_id = int(user.id)
    return user


async def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    # Dedicated session for auth so services own tx boundaries on the request session.
    session: AsyncSession = Depends(get_session, use_cache=False),
) -> User:
    user = await _resolve_user(request, creds, session)
    if user is None:
        raise UnauthorizedError("missing token")
    return user


async def get_optional_user(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
    session: AsyncSession = Depends(get_session, use_cache=False),
) -> User | None:
    return await _resolve_user(request, creds, session)


def require_user_id(user: User | None) -> int:
    if user is None or user.id is None:
        raise UnauthorizedError("missing requester")
    return int(user.id)
