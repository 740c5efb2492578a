"""HTTP server binding."""

from pydantic import BaseModel


class ServerConfig(BaseModel, frozen=True):
    """Address uvicorn binds the API to."""

    host: str
    port: int

    @property
    def bind(self) -> str:
        return f"{self.host}:{self.port}"
