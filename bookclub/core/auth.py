"""
Identity resolution for FastAPI endpoints.

Sessions are owned by the external identity provider; it hands clients an
HS256 access token signed with our shared SECRET_KEY. We only verify the
token and read the `sub` claim as the user id.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bookclub.core.config import settings
from bookclub.core.errors import AuthenticationRequiredError


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    display_name: Optional[str] = None


_bearer_scheme = HTTPBearer(auto_error=False)


def encode_access_token(user_id: str, **claims) -> str:
    """Mint a token the way the identity provider does. Used by scripts and tests."""
    body = {"sub": user_id, **claims}
    if settings.JWT_AUDIENCE and "aud" not in body:
        body["aud"] = settings.JWT_AUDIENCE
    return jwt.encode(body, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_access_token(token: str) -> AuthenticatedUser:
    options = {"verify_aud": settings.JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options=options,
            leeway=5,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationRequiredError(reason="token_expired")
    except jwt.InvalidTokenError:
        raise AuthenticationRequiredError(reason="invalid_token")

    sub = str(payload.get("sub") or "").strip()
    if not sub:
        raise AuthenticationRequiredError(reason="invalid_token")
    name = payload.get("name") or payload.get("display_name")
    return AuthenticatedUser(id=sub, display_name=str(name) if name else None)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationRequiredError()
    return verify_access_token(credentials.credentials)
