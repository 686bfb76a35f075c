from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote

import jwt
from passlib.context import CryptContext

from ..config import get_settings
from ..models import User

_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password must not be blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except ValueError:
        # Unrecognised hash format.
        return False


def _encode(payload: Dict[str, Any], expires: timedelta) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims = dict(payload)
    claims["iat"] = int(now.timestamp())
    claims["exp"] = int((now + expires).timestamp())
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=_JWT_ALG)


def create_access_token(user: User) -> str:
    settings = get_settings()
    payload = {
        "sub": user.id,
        "userName": user.user_name,
        "email": user.email,
        "role": user.role.value if user.role else None,
        "type": ACCESS_TOKEN_TYPE,
    }
    return _encode(payload, timedelta(minutes=settings.access_token_expire_minutes))


def create_refresh_token(user_id: str) -> str:
    settings = get_settings()
    # jti keeps two tokens minted within the same second distinct.
    payload = {"sub": user_id, "type": REFRESH_TOKEN_TYPE, "jti": secrets.token_hex(8)}
    return _encode(payload, timedelta(days=settings.refresh_token_expire_days))


def decode_token(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; raises ``jwt.InvalidTokenError`` subclasses."""
    if not token:
        raise jwt.InvalidTokenError("token is blank")
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[_JWT_ALG])


def make_email_verification_code(email: str) -> str:
    """Salted hash of the address, safe to embed in a query string."""
    return quote(_pwd.hash(email.lower()), safe="")


def email_matches_code(email: str, code: str) -> bool:
    return verify_password(email.lower(), unquote(code))


def generate_reset_token() -> str:
    return secrets.token_hex(32)
