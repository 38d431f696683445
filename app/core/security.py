"""Security utilities for authentication.

Tokens are minted by the identity layer. The booking core only verifies
them and turns the claims into an :class:`Actor`.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt
from pydantic import ValidationError

from app.config import settings
from app.core.exceptions import AuthenticationError
from app.models.user import Actor, Role


def create_access_token(
    actor: Actor,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token carrying the actor's role and provider link."""
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode: dict[str, Any] = {
        "sub": str(actor.user_id),
        "role": actor.role.value,
        "exp": expire,
        "type": "access",
    }
    if actor.provider_id is not None:
        to_encode["provider_id"] = str(actor.provider_id)
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str, token_type: str = "access") -> dict[str, Any]:
    """Verify and decode a JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("type") != token_type:
            raise AuthenticationError("Invalid token type")
        return payload
    except JWTError as e:
        raise AuthenticationError(f"Token validation failed: {str(e)}")


def actor_from_token(token: str) -> Actor:
    """Resolve the calling actor from an access token.

    SYSTEM is reserved for the scheduler and is never accepted from a token.
    """
    payload = verify_token(token)
    try:
        role = Role(payload.get("role"))
        if role == Role.SYSTEM:
            raise AuthenticationError("Invalid token role")
        provider_id = payload.get("provider_id")
        return Actor(
            user_id=UUID(payload["sub"]),
            role=role,
            provider_id=UUID(provider_id) if provider_id else None,
        )
    except (KeyError, ValueError, ValidationError):
        raise AuthenticationError("Invalid token payload")
