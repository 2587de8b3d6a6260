"""
Request logging middleware.

Pure ASGI so streaming responses are not buffered. One log line per request
with method, path, status and duration; failed requests also carry a masked
error reason taken from the response body.
"""

import json
import logging
import time
from typing import Optional, Iterable
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..core.logging_config import filter_sensitive_data, truncate_large_data

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


def _level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


def _error_reason(body: bytes) -> Optional[str]:
    """Short, masked error reason from a JSON error body such as {"error", "message"}."""
    text = body.decode("utf-8", errors="ignore")
    if not text:
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return truncate_large_data(text, max_length=MAX_REASON_LENGTH)

    if isinstance(payload, dict):
        code = payload.get("error")
        detail = payload.get("message") or payload.get("detail")
        if code and detail:
            return truncate_large_data(f"{code}: {detail}", max_length=MAX_REASON_LENGTH)
        if detail or code:
            return truncate_large_data(str(filter_sensitive_data(detail or code)), max_length=MAX_REASON_LENGTH)

    masked = json.dumps(filter_sensitive_data(payload), ensure_ascii=False)
    return truncate_large_data(masked, max_length=MAX_REASON_LENGTH)


class RequestLoggingMiddleware:
    """Logs method, path, status and duration of every HTTP request."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[Iterable[str]] = None):
        self.app = app
        self.exclude_paths = set(exclude_paths if exclude_paths is not None else ("/", "/health"))

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        path = scope.get("path", "")
        if scope["type"] != "http" or path in self.exclude_paths:
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "UNKNOWN")
        started = time.perf_counter()
        response = {"status": 0, "body": b""}

        async def capture(message: Message) -> None:
            if message["type"] == "http.response.start":
                response["status"] = message.get("status", 0)
            elif message["type"] == "http.response.body" and response["status"] >= 400:
                response["body"] += message.get("body", b"")
            await send(message)

        try:
            await self.app(scope, receive, capture)
        except Exception as e:
            logger.error(
                f"Unhandled error on {method} {path}: {e}",
                exc_info=True,
                extra={"extra_fields": {
                    "method": method,
                    "path": path,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                }}
            )
            raise

        status_code = response["status"]
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        reason = _error_reason(response["body"]) if status_code >= 400 else None

        message = f"{method} {path} -> {status_code} in {duration_ms}ms"
        if reason:
            message += f" ({reason})"

        client = scope.get("client")
        logger.log(
            _level_for(status_code),
            message,
            extra={"extra_fields": {
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "client": client[0] if client else None,
                "error_reason": reason,
            }}
        )
