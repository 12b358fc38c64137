"""HTTP middleware."""

from safecampus.api.middleware.error_handler import ErrorHandlerMiddleware, register_exception_handlers
from safecampus.api.middleware.rate_limiter import RateLimitConfig, RateLimitMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "register_exception_handlers",
    "RateLimitConfig",
    "RateLimitMiddleware",
]
