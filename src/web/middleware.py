"""Request ID middleware.

Reads ``X-Request-ID`` from the incoming request (or generates one), sets
it in the logging context for the duration of the request, and echoes it
back in the response headers.
"""

import logging
import uuid
from typing import Any, Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from services.logging_config import request_id_var, session_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request id to every request and its log records."""

    def __init__(
        self,
        app,
        header_name: str = REQUEST_ID_HEADER,
        generator: Optional[Callable[[], str]] = None,
    ):
        super().__init__(app)
        self.header_name = header_name
        self.generator = generator or (lambda: uuid.uuid4().hex)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Any],
    ) -> Response:
        request_id = request.headers.get(self.header_name) or self.generator()

        request_token = request_id_var.set(request_id)
        session_token = session_id_var.set(None)
        try:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[self.header_name] = request_id
            return response
        finally:
            session_id_var.reset(session_token)
            request_id_var.reset(request_token)
