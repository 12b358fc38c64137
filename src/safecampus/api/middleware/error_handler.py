"""
Error Handler Middleware

Provides consistent error handling and response formatting:
- Domain errors map to their status code with a ``detail`` message
- Anything unhandled becomes a sanitised 500 with a correlation ID
"""

import re
import time
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from safecampus.config.logging_config import bind_correlation_id, clear_context, get_logger
from safecampus.domain.errors import SafeCampusError, SOSAlreadyActiveError, StoreUnavailableError
from safecampus.infrastructure.metrics import track_http_request
from safecampus.infrastructure.monitoring import capture_exception_with_context

logger = get_logger(__name__)


async def _domain_error_handler(request: Request, exc: SafeCampusError) -> JSONResponse:
    content: dict = {"detail": exc.message}
    if isinstance(exc, SOSAlreadyActiveError) and exc.sos_id:
        content["sos_id"] = exc.sos_id

    if isinstance(exc, StoreUnavailableError):
        logger.error("Store unavailable", path=request.url.path, error=str(exc))
    elif exc.status_code >= 500:
        logger.error("Domain error", path=request.url.path, error_type=type(exc).__name__, error=str(exc))
    else:
        logger.info("Request rejected", path=request.url.path, error_type=type(exc).__name__, status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=content)


async def _value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.info("Invalid request value", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def register_exception_handlers(app: FastAPI) -> None:
    """Map the domain error taxonomy onto HTTP responses."""
    app.add_exception_handler(SafeCampusError, _domain_error_handler)
    app.add_exception_handler(ValueError, _value_error_handler)


_CORRELATION_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")
_SOS_PATH = re.compile(r"/sos/(?!token/|active$|history$)([^/]+)")


def correlation_id_for(request: Request) -> str:
    """Client-supplied id when well formed, otherwise a fresh one."""
    supplied = request.headers.get("X-Correlation-ID", "")
    return supplied if _CORRELATION_ID.match(supplied) else uuid4().hex


def endpoint_label(request: Request) -> str:
    """Route template (``/api/v1/sos/{sos_id}``) or ``unmatched``."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def sos_id_from_path(path: str) -> Optional[str]:
    match = _SOS_PATH.search(path)
    return match.group(1) if match else None


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Binds a correlation id for the request and turns anything
    unhandled into a sanitised 500, reported to Sentry with the SOS id
    when the path names one. Every request is counted and timed by
    route template.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        correlation_id = correlation_id_for(request)
        bind_correlation_id(correlation_id)
        started = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            path = request.url.path
            sos_id = sos_id_from_path(path)
            logger.error(
                "Unhandled exception",
                path=path,
                method=request.method,
                sos_id=sos_id,
                error_type=type(e).__name__,
                exc_info=True,
            )
            capture_exception_with_context(
                e,
                sos_id=sos_id,
                extra={"path": path, "method": request.method, "correlation_id": correlation_id},
            )
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "correlation_id": correlation_id},
                headers={"X-Correlation-ID": correlation_id},
            )
        finally:
            track_http_request(request.method, endpoint_label(request), status_code, time.perf_counter() - started)
            clear_context()

        response.headers["X-Correlation-ID"] = correlation_id
        return response
