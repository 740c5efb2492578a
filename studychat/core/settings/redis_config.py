"""Pub/sub broker configuration."""

from pydantic import BaseModel


class RedisConfig(BaseModel, frozen=True):
    """Redis instance carrying the change feed and typing channels."""

    url: str
