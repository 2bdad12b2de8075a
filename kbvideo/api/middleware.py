"""
HTTP middleware.

RequestLoggingMiddleware gives every request an id (taken from X-Request-ID
when the client sends one) that is echoed back in the response headers and
attached to the request and response log lines.

UploadSizeLimitMiddleware caps upload bodies while they arrive, before the
multipart parser spools them to a temporary file.
"""

import logging
import time
import uuid
from typing import Any, Callable

from starlette.exceptions import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.videos.errors import PayloadTooLarge

logger = logging.getLogger(__name__)

# Room for multipart boundaries, part headers and the subtopicId field
MULTIPART_ALLOWANCE_BYTES = 64 * 1024


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration for each request."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        start_time = time.perf_counter()
        logger.debug(
            "Request started",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else "unknown",
            }
        )

        response: Response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Request completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        )

        response.headers["X-Request-ID"] = request_id

        return response


class UploadTooLarge(HTTPException):
    """Raised from receive() once an upload body passes the limit."""

    def __init__(self, message: str) -> None:
        super().__init__(status_code=413, detail=message)


class UploadSizeLimitMiddleware:
    """
    Enforces the upload ceiling on the raw request body.

    A declared Content-Length over the limit is refused before any body is
    read. Otherwise body chunks are counted as they are received and reading
    stops with UploadTooLarge as soon as the total passes the limit; the
    app's HTTPException handler renders it as a 413.

    The limit is the file ceiling plus MULTIPART_ALLOWANCE_BYTES, so the
    exact per-file check still happens in UploadReceiver.

    Args:
        app: The wrapped ASGI app
        max_upload_size_bytes: Largest accepted video
        paths: Exact paths whose POST bodies are limited
    """

    def __init__(
        self,
        app: ASGIApp,
        max_upload_size_bytes: int,
        paths: tuple[str, ...] = ("/api/videos",),
    ) -> None:
        self.app = app
        self.max_body_bytes = max_upload_size_bytes + MULTIPART_ALLOWANCE_BYTES
        self.message = PayloadTooLarge.for_limit(max_upload_size_bytes).message
        self.paths = {path.rstrip("/") for path in paths}

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope["method"] != "POST"
            or scope["path"].rstrip("/") not in self.paths
        ):
            await self.app(scope, receive, send)
            return

        declared = self._declared_length(scope)
        if declared is not None and declared > self.max_body_bytes:
            logger.warning(
                "Rejected upload by Content-Length",
                extra={"path": scope["path"], "content_length": declared}
            )
            response = JSONResponse(status_code=413, content={"error": self.message})
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    logger.warning(
                        "Stopped reading oversized upload",
                        extra={"path": scope["path"], "received_bytes": received}
                    )
                    raise UploadTooLarge(self.message)
            return message

        await self.app(scope, limited_receive, send)

    @staticmethod
    def _declared_length(scope: Scope) -> int | None:
        for name, value in scope.get("headers", []):
            if name == b"content-length":
                try:
                    return int(value)
                except ValueError:
                    return None
        return None
