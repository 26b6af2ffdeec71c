import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from backend.core.logging import LOGGER_NAME, request_id_ctx_var, latency_bucket_ms


logger = logging.getLogger(LOGGER_NAME)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Correlate every request with an id.

    Reuses the caller's x-request-id when present, exposes it on
    request.state and the logging context, echoes it on the response and logs
    one request.complete line (with the resolved user, if any).
    """

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        start = time.perf_counter()

        fields = {
            "request_id": rid,
            "path": request.url.path,
            "method": request.method,
        }
        try:
            response = await call_next(request)
        except Exception:
            fields["latency_bucket"] = latency_bucket_ms((time.perf_counter() - start) * 1000)
            logger.error("request.failed", extra=fields)
            raise
        finally:
            request_id_ctx_var.reset(token)

        response.headers[self.header_name] = rid
        fields.update(
            status=response.status_code,
            user_id=getattr(request.state, "user_id", None),
            latency_bucket=latency_bucket_ms((time.perf_counter() - start) * 1000),
        )
        logger.info("request.complete", extra=fields)
        return response
