"""Session JWT authentication (HS256, shared secret with the login service)."""

from dataclasses import dataclass, field

import jwt as pyjwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select

from vidgen.core.config import get_settings
from vidgen.db.base import get_session_factory

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    claims: dict = field(default_factory=dict)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def decode_session_jwt(token: str) -> CurrentUser:
    """Verify signature and expiry and return the caller.

    Raises:
        HTTPException(401): bad signature, expired, or missing ``sub``/``exp``
    """
    settings = get_settings()
    try:
        claims = pyjwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except pyjwt.ExpiredSignatureError as exc:
        raise _unauthorized("Token expired") from exc
    except pyjwt.MissingRequiredClaimError as exc:
        raise _unauthorized(f"Missing required claim: {exc}") from exc
    except pyjwt.InvalidTokenError as exc:
        raise _unauthorized(f"Invalid token: {exc}") from exc

    if not claims.get("sub"):
        raise _unauthorized("Token missing sub claim")
    return CurrentUser(user_id=str(claims["sub"]), claims=claims)


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> CurrentUser:
    """Dependency for any signed-in user. Stores the id on ``request.state``."""
    if credentials is None:
        raise _unauthorized("Missing authorization header")

    user = decode_session_jwt(credentials.credentials)
    request.state.user_id = user.user_id
    return user


async def require_admin(user: CurrentUser = Depends(require_auth)) -> CurrentUser:
    """Dependency for admin routes; admin is ``users.is_admin``, not a token claim."""
    from vidgen.db.models.user import User

    async with get_session_factory()() as session:
        is_admin = await session.scalar(select(User.is_admin).where(User.id == user.user_id))

    if not is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
