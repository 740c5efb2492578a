"""ASGI authentication middleware."""

import structlog
from starlette.types import ASGIApp, Receive, Scope, Send

from studychat.core.exceptions import AppException
from studychat.schemas.response_schema import ErrorResponse
from studychat.services.token_service import TokenService

logger = structlog.get_logger()

PUBLIC_PATHS: set[str] = {
    "",
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


class AuthMiddleware:
    """Pure ASGI middleware for JWT validation (SSE-compatible)."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app
        self._tokens = TokenService()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "")
        if method == "OPTIONS":
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        normalized = path.rstrip("/") or "/"
        if normalized in PUBLIC_PATHS or path.startswith(("/docs", "/redoc")):
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        auth_header = headers.get(b"authorization", b"").decode()

        if not auth_header.startswith("Bearer "):
            await self._send_error(
                send, 401, "MISSING_TOKEN", "Authorization header required"
            )
            return

        try:
            payload = self._tokens.decode_token(auth_header[7:])
        except AppException as exc:
            logger.info("Rejected access token", path=path, code=exc.code)
            await self._send_error(send, exc.status_code, exc.code, exc.message)
            return

        scope.setdefault("state", {})
        scope["state"]["user_id"] = int(payload.sub)
        scope["state"]["email"] = payload.email
        scope["state"]["role"] = payload.role
        scope["state"]["jti"] = payload.jti
        scope["state"]["exp"] = payload.exp

        await self.app(scope, receive, send)

    @staticmethod
    async def _send_error(send: Send, status: int, code: str, message: str) -> None:
        """Send a JSON error response directly."""
        body = ErrorResponse(
            status=status, message=message, code=code
        ).model_dump_json().encode()

        await send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                ],
            }
        )
        await send({"type": "http.response.body", "body": body})
