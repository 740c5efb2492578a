"""Response envelopes shared by every endpoint."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Envelope for errors raised before routing (auth, rate limiting)."""

    status: int
    message: str
    code: str


class ApiResponse(BaseModel, Generic[T]):
    """Envelope wrapping a successful payload."""

    status: int = 200
    message: str = "Success"
    data: T | None = None


def success_response(data: T, status: int = 200, message: str = "Success") -> dict:
    """Wrap ``data`` in the success envelope."""
    return {"status": status, "message": message, "data": data}
