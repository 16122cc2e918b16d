"""Middleware for request correlation."""

import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.request_context import clear_user_context, set_request_id

REQUEST_ID_HEADER = "X-Request-Id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag every request with an ID that is echoed back and logged."""

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request within a fresh log context.

        Args:
            request: FastAPI request
            call_next: Next middleware/handler

        Returns:
            Response carrying the request ID header
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        set_request_id(request_id)
        clear_user_context()
        try:
            response = await call_next(request)
        finally:
            set_request_id(None)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
