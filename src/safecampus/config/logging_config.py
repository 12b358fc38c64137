"""
SafeCampus Logging Configuration

structlog pipeline shared by the API, the notification dispatcher and
the device-side agent.

SECURITY: An SOS token lets an unauthenticated device cancel an alert
and stream positions. Credential-like keys are replaced before
rendering; phone numbers are masked to their last four digits.
"""

import logging
import sys
from typing import Any, Callable, Optional

import structlog

from safecampus import __version__
from safecampus.config.settings import Settings

REDACTED = "[REDACTED]"

# Substrings of event keys whose values never reach a log sink
CREDENTIAL_KEY_PARTS: tuple[str, ...] = (
    "token",
    "secret",
    "password",
    "authorization",
    "bearer",
    "credential",
    "private_key",
    "api_key",
)

PHONE_KEYS: frozenset[str] = frozenset({"phone", "user_phone", "userPhone"})

QUIET_LOGGERS: tuple[str, ...] = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "firebase_admin",
    "google",
    "urllib3",
    "sqlalchemy.engine",
)

Processor = Callable[[Any, str, dict[str, Any]], dict[str, Any]]


def is_credential_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in CREDENTIAL_KEY_PARTS)


def mask_phone(value: Any) -> Any:
    """Keep the last four digits of a phone number."""
    if not isinstance(value, str):
        return value
    digits = [c for c in value if c.isdigit()]
    if len(digits) <= 4:
        return value
    return "*" * (len(digits) - 4) + "".join(digits[-4:])


def _scrub(key: str, value: Any) -> Any:
    if is_credential_key(key):
        return REDACTED
    if key in PHONE_KEYS:
        return mask_phone(value)
    if isinstance(value, dict):
        return {k: _scrub(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(key, item) for item in value]
    return value


def scrub_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Redact credentials and mask phone numbers, recursively.

    Nested dicts are scrubbed by their own keys; list items inherit the
    key of the list, so ``{"tokens": [...]}`` is redacted whole.
    """
    return {key: _scrub(key, value) for key, value in event_dict.items()}


def service_context(env: str) -> Processor:
    def add_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", "safecampus-backend")
        event_dict.setdefault("version", __version__)
        event_dict.setdefault("env", env)
        return event_dict

    return add_context


def get_processors(settings: Settings) -> list[Any]:
    """Processor chain; console rendering only in development."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        scrub_event,
        service_context(settings.env),
    ]

    if settings.env == "development":
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    else:
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ])
    return processors


def configure_logging(settings: Settings) -> None:
    """
    Configure structlog and the stdlib root logger.

    Safe to call more than once; each application factory call
    reconfigures with its own settings.
    """
    level = getattr(logging, settings.log_level.upper())

    structlog.configure(
        processors=get_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_correlation_id(correlation_id: str) -> None:
    """Attach a request correlation id to every event in this context."""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def bind_actor(actor_id: str, role: Optional[str] = None) -> None:
    """Attach the authenticated caller to every event in this context."""
    structlog.contextvars.bind_contextvars(actor_id=actor_id, actor_role=role)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
