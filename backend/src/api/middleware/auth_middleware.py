"""Authentication dependency helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Annotated, Optional

from fastapi import Header, HTTPException, status

from ...models.auth import JWTPayload
from ...services.auth import AuthError, AuthService
from ...services.config import get_config

DEMO_USER = "demo-user"


def _unauthorized(message: str, error: str = "unauthorized") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
    )


@dataclass
class AuthContext:
    """Context extracted from a bearer token."""

    user_id: str
    token: str
    payload: JWTPayload


def get_auth_context(
    authorization: Annotated[Optional[str], Header(alias="Authorization")] = None,
) -> AuthContext:
    """
    Resolve the owner of the request from a Bearer token.

    Raises HTTPException if the header is missing/invalid, unless no-auth
    mode serves anonymous requests as the demo user.
    """
    config = get_config()
    if not authorization:
        if config.enable_noauth:
            now = int(datetime.now(timezone.utc).timestamp())
            payload = JWTPayload(sub=DEMO_USER, iat=now, exp=now + 3600)
            return AuthContext(user_id=DEMO_USER, token="no-auth", payload=payload)
        raise _unauthorized("Authorization header required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("Authorization header must be in format: Bearer <token>")

    try:
        payload = AuthService(config).validate_jwt(token)
    except AuthError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"error": exc.error, "message": exc.message, "detail": exc.detail},
        ) from exc

    return AuthContext(user_id=payload.sub, token=token, payload=payload)


__all__ = ["AuthContext", "DEMO_USER", "get_auth_context"]
