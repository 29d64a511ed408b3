"""Request context: request id, tenant fields on every log line, timing.

Each request gets an id (the client's ``X-Request-ID`` or a fresh UUID)
held in a ContextVar, so every log line emitted while serving it can be
correlated without passing the id around.  The tenant dependency adds
the resolved user and organization the same way.

Paths are logged as route templates (``/v1/invitations/{token}``), never
as raw URLs: invitation tokens travel in the path.
"""

from __future__ import annotations

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from crm.core.logging import request_id_var

logger = logging.getLogger(__name__)


def route_template(request: Request) -> str:
    """The matched route's path template, or a fixed label if none matched."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if path else "<unmatched>"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns the request id, times the request and logs one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        path = route_template(request)
        org_id = getattr(request.state, "organization_id", None)
        user_id = getattr(request.state, "user_id", None)
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": path,
                "user_id": str(user_id) if user_id else None,
                "organization_id": str(org_id) if org_id else None,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
