"""
Per-request id, echoed as X-Request-ID and bound into every log entry
written while the request is handled.
"""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from haroo.infrastructure.observability.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
)

logger = get_logger(__name__)

MAX_REQUEST_ID_LENGTH = 128


def _request_id(request: Request) -> str:
    incoming = (request.headers.get("x-request-id") or "").strip()
    if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH:
        return incoming
    return str(uuid.uuid4())


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = _request_id(request)
        request.state.request_id = request_id

        clear_request_context()
        bind_request_context(request_id=request_id)
        logger.debug("Request started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers["X-Request-ID"] = request_id
        return response
