from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.shared.logging import bind_request_context, clear_request_context, set_correlation_id

REQUEST_ID_HEADER = "X-Request-ID"
TENANT_HEADER = "X-Tenant-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a correlation id (taken from X-Request-ID or
    generated) and binds it, plus the caller's tenant when the upstream
    gateway forwards one, to every log line of the request.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = set_correlation_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        # Identity is resolved upstream; the header is only log context here.
        bind_request_context(
            tenant_id=request.headers.get(TENANT_HEADER),
            extras={"path": request.url.path, "method": request.method},
        )
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
