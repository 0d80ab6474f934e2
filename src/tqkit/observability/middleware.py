"""Request correlation middleware."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logger import new_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Binds the caller's ``X-Request-ID`` (or a new one) for log entries."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming:
            set_request_id(incoming)
            request_id = incoming
        else:
            request_id = new_request_id()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
