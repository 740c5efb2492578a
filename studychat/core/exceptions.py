"""Application exception classes and handlers."""

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, code: str, status_code: int = 400) -> None:
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


# --- Bad Request (400) ---


class EmptyMessageError(AppException):
    """Message has neither text nor attachments."""

    def __init__(self, message: str = "Message must have text or attachments") -> None:
        super().__init__(message=message, code="EMPTY_MESSAGE", status_code=400)


# --- Authentication (401) ---


class AuthenticationError(AppException):
    """Base authentication error."""

    def __init__(self, message: str = "Authentication failed") -> None:
        super().__init__(message=message, code="AUTHENTICATION_ERROR", status_code=401)


class TokenExpiredError(AppException):
    """Token has expired."""

    def __init__(self) -> None:
        super().__init__(
            message="Token has expired",
            code="TOKEN_EXPIRED",
            status_code=401,
        )


class InvalidTokenError(AppException):
    """Token is invalid."""

    def __init__(self) -> None:
        super().__init__(
            message="Invalid token",
            code="INVALID_TOKEN",
            status_code=401,
        )


# --- Authorization (403) ---


class AuthorizationError(AppException):
    """Insufficient permissions."""

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message=message, code="AUTHORIZATION_ERROR", status_code=403)


# --- Not Found (404) ---


class NotFoundError(AppException):
    """Requested resource does not exist (or is no longer there)."""

    def __init__(self, message: str = "Not found", code: str = "NOT_FOUND") -> None:
        super().__init__(message=message, code=code, status_code=404)


class MessageNotFoundError(NotFoundError):
    """Chat message not found."""

    def __init__(self) -> None:
        super().__init__(message="Message not found", code="MESSAGE_NOT_FOUND")


class RoomNotFoundError(NotFoundError):
    """Room not found or not visible to the caller."""

    def __init__(self) -> None:
        super().__init__(message="Room not found", code="ROOM_NOT_FOUND")


class UserNotFoundError(NotFoundError):
    """User not found."""

    def __init__(self) -> None:
        super().__init__(message="User not found", code="USER_NOT_FOUND")


# --- Service Unavailable (503) ---


class PersistenceError(AppException):
    """Message store unreachable or a constraint was violated."""

    def __init__(self, message: str = "Message store unavailable") -> None:
        super().__init__(message=message, code="PERSISTENCE_ERROR", status_code=503)


class TransportError(AppException):
    """Realtime pub/sub publish or subscribe failed."""

    def __init__(self, message: str = "Realtime transport unavailable") -> None:
        super().__init__(message=message, code="TRANSPORT_ERROR", status_code=503)


# --- Exception Handlers ---


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Central exception handler for AppException."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": {
                "code": exc.code,
                "message": exc.message,
            },
        },
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Map request validation failures onto the error envelope."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    detail = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": f"{location}: {detail}" if location else detail,
            },
        },
    )
