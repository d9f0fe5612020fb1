from typing import AsyncIterator

import jwt
from fastapi import Header, HTTPException, status
from jwt import InvalidTokenError
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import async_session
from .domain.repositories import Clock
from .utils.time import SystemClock


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers=_BEARER_CHALLENGE)


async def get_current_player_id(authorization: str | None = Header(default=None)) -> int:
    if authorization is None:
        raise _unauthorized("Authorization header required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Bearer token required")
    settings = get_settings()
    try:
        # Expired tokens raise ExpiredSignatureError, a subclass of InvalidTokenError.
        claims = jwt.decode(
            token.strip(),
            settings.auth_secret,
            algorithms=[settings.auth_algorithm],
            options={"require": ["sub", "exp"]},
        )
        return int(claims["sub"])
    except (InvalidTokenError, TypeError, ValueError) as exc:
        raise _unauthorized("Invalid token") from exc


def get_clock() -> Clock:
    return SystemClock()