import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from dodone.common.logging import get_logger

logger = get_logger("middleware")

QUIET_PATHS = {"/health"}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Logs every request and tags board responses with the sync phase."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
        logger.log(
            level,
            "%s %s %d %.1fms",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )

        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        session = getattr(request.app.state, "session", None)
        if session is not None:
            response.headers["X-Sync-Phase"] = session.state.phase.value
        return response
