"""JWT authentication configuration."""

from pydantic import BaseModel, SecretStr


class AuthConfig(BaseModel, frozen=True):
    """JWT access token settings."""

    secret_key: SecretStr
    algorithm: str
    access_token_expire_minutes: int
