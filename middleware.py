from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from contextvars import ContextVar

import contextlib
import logging
import uuid

REQUEST_ID_HEADER = "X-Request-ID"

# Correlation id for log records: the HTTP request id, or the report id inside a job
correlation_id_context: ContextVar[str] = ContextVar("correlation_id", default="N/A")

logger = logging.getLogger(__name__)


def new_correlation_id() -> str:
    # shortened for readability in logs
    return str(uuid.uuid4())[:8]


@contextlib.contextmanager
def bind_correlation_id(correlation_id: str):
    """Bind `correlation_id` to every log record emitted inside the block."""
    token = correlation_id_context.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_context.reset(token)


# --- Middleware Implementation ---

class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Reuse the caller's id so a report request can be traced into its job
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_correlation_id()

        with bind_correlation_id(request_id):
            logger.debug("%s %s request started", request.method, request.url.path)
            try:
                response = await call_next(request)
            except Exception:
                # Log any exceptions with the context intact
                logger.exception("Unhandled error during request processing.")
                raise

            response.headers[REQUEST_ID_HEADER] = request_id
            logger.debug("%s %s request finished with %d", request.method, request.url.path, response.status_code)

        return response
