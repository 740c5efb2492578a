"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from studychat.core.settings import (
    AppConfig,
    AuthConfig,
    ChatConfig,
    DatabaseConfig,
    RedisConfig,
    ServerConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.chat.channel_prefix).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = Field(
        default="studychat",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8004,
        ge=1,
        le=65535,
        description="Server port",
    )

    # JWT Auth
    jwt_secret_key: SecretStr = Field(
        description="JWT secret key shared with the identity provider",
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm",
    )
    jwt_access_token_expire_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="Access token expiration in minutes",
    )

    # Database
    database_url: SecretStr = Field(
        description="Async database URL (mysql+aiomysql://...)",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Chat
    chat_channel_prefix: str = Field(
        default="studychat",
        min_length=1,
        description="Prefix for realtime pub/sub channel names",
    )
    typing_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        le=60,
        description="Quiet period after which a typing signal is stale",
    )
    edit_tolerance_seconds: float = Field(
        default=1.0,
        ge=0,
        description="updated_at within this window of created_at is not an edit",
    )
    max_message_length: int = Field(
        default=4000,
        ge=1,
        le=20000,
        description="Maximum message body length",
    )
    max_attachments: int = Field(
        default=10,
        ge=0,
        le=50,
        description="Maximum attachment URLs per message",
    )
    send_rate_limit: str = Field(
        default="30/minute",
        description="Message send endpoint rate limit",
    )

    # --- Domain properties ---

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
        )

    @cached_property
    def auth(self) -> AuthConfig:
        """JWT authentication configuration."""
        return AuthConfig(
            secret_key=self.jwt_secret_key,
            algorithm=self.jwt_algorithm,
            access_token_expire_minutes=self.jwt_access_token_expire_minutes,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(url=self.database_url)

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(url=self.redis_url)

    @cached_property
    def chat(self) -> ChatConfig:
        """Realtime chat configuration."""
        return ChatConfig(
            channel_prefix=self.chat_channel_prefix,
            typing_timeout_seconds=self.typing_timeout_seconds,
            edit_tolerance_seconds=self.edit_tolerance_seconds,
            max_body_length=self.max_message_length,
            max_attachments=self.max_attachments,
            send_rate_limit=self.send_rate_limit,
        )

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
