"""Request tracing middleware for the Quote Engine API."""
import time
import uuid
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("quoter-api.middleware")

SKIP_LOG_PATHS = {"/health"}

# Route parameters worth tagging on the request log line
TRACED_PATH_PARAMS = ("order_id", "product_id")


def path_context(request: Request) -> dict:
    """Order/product ids matched by the router; empty until routing has run."""
    params = request.scope.get("path_params") or {}
    return {name: params[name] for name in TRACED_PATH_PARAMS if name in params}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """
    Stamps X-Request-ID and X-Process-Time on every response and logs one
    line per request, tagged with the order or product it addressed.
    Client and server errors are logged at WARNING.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        started = time.perf_counter()
        request.state.request_id = request_id

        response: Response = await call_next(request)

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        if request.url.path in SKIP_LOG_PATHS:
            return response

        context = path_context(request)
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        target = " ".join(f"{k}={v}" for k, v in context.items())
        logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code}"
            + (f" [{target}]" if target else ""),
            extra={
                **context,
                "http_method": request.method,
                "http_path": request.url.path,
                "http_status": response.status_code,
                "request_id": request_id,
                "duration_ms": duration_ms,
            },
        )
        return response
