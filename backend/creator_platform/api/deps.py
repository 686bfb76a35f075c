from typing import Callable, Optional

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from ..database import get_session
from ..models import Role, User
from ..services.security import REFRESH_TOKEN_TYPE, decode_token

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

_bearer = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED, detail=detail, headers={"WWW-Authenticate": "Bearer"}
    )


def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    session: Session = Depends(get_session),
) -> User:
    """Authenticate with a bearer token, falling back to the access-token cookie."""
    token: Optional[str] = None
    if credentials is not None and credentials.credentials:
        token = credentials.credentials
    if not token:
        token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        raise _unauthorized("Authentication token is missing")

    try:
        claims = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")

    if claims.get("type") == REFRESH_TOKEN_TYPE:
        raise _unauthorized("Refresh token cannot be used for authentication")
    user_id = claims.get("sub")
    if not user_id:
        raise _unauthorized("Invalid token")

    user = session.get(User, user_id)
    if not user or not user.is_active:
        raise _unauthorized("User not found or inactive")
    return user


def require_roles(*roles: Role) -> Callable[..., User]:
    """Dependency factory allowing only the given roles through."""

    def _check(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return user

    return _check
