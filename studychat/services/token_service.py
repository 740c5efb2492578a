"""JWT access token issuing and validation.

Identities come from an external provider that signs access tokens with
the shared secret; this service only mints tokens for local tooling and
verifies incoming ones.
"""

import uuid
from datetime import UTC, datetime, timedelta

import jwt

from studychat.core.config import settings
from studychat.core.exceptions import (
    InvalidTokenError,
    TokenExpiredError,
)
from studychat.schemas.auth_schema import TokenPayload


class TokenService:
    """Create and decode signed JWT access tokens."""

    def __init__(self) -> None:
        self._secret = settings.auth.secret_key.get_secret_value()
        self._algorithm = settings.auth.algorithm

    def create_access_token(self, user_id: int, email: str, role: str) -> str:
        """Create a signed JWT access token."""
        now = datetime.now(UTC)
        expire = now + timedelta(minutes=settings.auth.access_token_expire_minutes)
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role,
            "type": "access",
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def decode_token(self, token: str) -> TokenPayload:
        """Decode and validate a JWT access token."""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError from e

        if payload.get("type") != "access":
            raise InvalidTokenError

        try:
            return TokenPayload(
                sub=payload["sub"],
                email=payload["email"],
                role=payload["role"],
                type=payload["type"],
                jti=payload["jti"],
                exp=payload["exp"],
            )
        except KeyError as e:
            raise InvalidTokenError from e
