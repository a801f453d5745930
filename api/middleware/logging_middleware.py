"""
Request logging middleware with correlation IDs for request tracing.
"""
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variables survive across awaits within one request
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
conversation_id_var: ContextVar[str] = ContextVar("conversation_id", default="")

CONVERSATION_HEADER = "x-conversation-id"

logger = logging.getLogger(__name__)


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_var.get()


def get_conversation_id() -> str:
    """Get the widget conversation ID (if the caller sent one) from context."""
    return conversation_id_var.get()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Assigns a short request ID to each request
    2. Captures the widget's X-Conversation-Id header, or the shareId query param
    3. Logs request start/end with timing and echoes X-Request-ID
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())[:8]
        request_id_var.set(request_id)

        conversation_id = request.headers.get(CONVERSATION_HEADER) or request.query_params.get("shareId", "")
        conversation_id_var.set(conversation_id)

        path = request.url.path
        fields = {"request_id": request_id, "conversation_id": conversation_id}
        start_time = time.perf_counter()
        logger.info(
            f"[{request_id}] → {request.method} {path}",
            extra={**fields, "method": request.method, "path": path, "event": "request_start"},
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"[{request_id}] ✗ {request.method} {path} failed: {str(e)[:100]} ({duration_ms:.0f}ms)",
                extra={**fields, "error": str(e), "duration_ms": duration_ms, "event": "request_error"},
                exc_info=True,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        log_level = logging.ERROR if response.status_code >= 500 else logging.INFO
        logger.log(
            log_level,
            f"[{request_id}] ← {response.status_code} {path} ({duration_ms:.0f}ms)",
            extra={**fields, "status_code": response.status_code, "duration_ms": duration_ms, "event": "request_end"},
        )

        response.headers["X-Request-ID"] = request_id
        return response


class ContextualLogger(logging.LoggerAdapter):
    """
    Logger adapter that prefixes every line with the active request and conversation IDs.
    Used by the generation pipeline so queued video work can be traced back to its request.
    """

    def __init__(self, name: str):
        super().__init__(logging.getLogger(name), {})

    def process(self, msg, kwargs):
        request_id = get_request_id()
        conversation_id = get_conversation_id()
        prefix = f"[{request_id}]" if request_id else ""
        if conversation_id:
            prefix += f"[conv:{conversation_id[:8]}]"
        return (f"{prefix} {msg}" if prefix else msg), kwargs


def get_logger(name: str) -> ContextualLogger:
    """Get a contextual logger that includes request/conversation IDs."""
    return ContextualLogger(name)
