"""Domain-specific configuration models."""

from studychat.core.settings.app_config import AppConfig
from studychat.core.settings.auth_config import AuthConfig
from studychat.core.settings.chat_config import ChatConfig
from studychat.core.settings.database_config import DatabaseConfig
from studychat.core.settings.redis_config import RedisConfig
from studychat.core.settings.server_config import ServerConfig

__all__ = [
    "AppConfig",
    "AuthConfig",
    "ChatConfig",
    "DatabaseConfig",
    "RedisConfig",
    "ServerConfig",
]
