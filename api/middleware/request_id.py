"""
Request ID middleware
Propagates X-Request-ID and binds it, with the caller's correlation headers,
to the structlog context of the request
"""
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    1. take X-Request-ID from the request or generate one
    2. bind it (plus Idempotency-Key and the peer address) for structlog
    3. echo it in the response headers
    """

    HEADER_NAME = "X-Request-ID"
    IDEMPOTENCY_HEADER = "Idempotency-Key"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        context = {
            "request_id": request_id,
            "client_ip": request.client.host if request.client else None,
            "method": request.method,
            "path": request.url.path,
        }
        forwarded_for = self._forwarded_for(request)
        if forwarded_for:
            # logged only; the webhook allowlist checks the peer address
            context["forwarded_for"] = forwarded_for
        idempotency_key = request.headers.get(self.IDEMPOTENCY_HEADER)
        if idempotency_key:
            context["idempotency_key"] = idempotency_key
        structlog.contextvars.bind_contextvars(**context)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

    @staticmethod
    def _forwarded_for(request: Request) -> Optional[str]:
        x_forwarded_for = request.headers.get("X-Forwarded-For")
        if x_forwarded_for:
            return x_forwarded_for.split(",")[0].strip()
        return request.headers.get("X-Real-IP")
