"""
Sentry Error Tracking Integration

Unexpected failures are reported with the SOS id and the caller's id
and role. Everything else a student sends us (coordinates, phone
numbers, SOS tokens, ID tokens) is scrubbed in ``before_send``.

Expected domain rejections (4xx) are dropped before they leave the
process: a duplicate trigger or an expired token is not an incident.
"""

import re
from typing import Any, Optional

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from safecampus.config.logging_config import REDACTED, get_logger, is_credential_key, mask_phone
from safecampus.domain.errors import SafeCampusError

logger = get_logger(__name__)

LOCATION_KEYS = frozenset({"lat", "lng", "latitude", "longitude", "location", "live_location", "liveLocation"})
PHONE_KEYS = frozenset({"phone", "user_phone", "userPhone"})

# Credentials embedded in free text: headers, SQL breadcrumbs, messages
_INLINE_SECRETS = re.compile(
    r"(bearer\s+)[A-Za-z0-9\-._~+/]+=*|((?:sos_)?token[\"']?\s*[:=]\s*[\"']?)[^\"'\s,&}]+",
    re.IGNORECASE,
)


def scrub_text(value: str) -> str:
    return _INLINE_SECRETS.sub(lambda m: (m.group(1) or m.group(2)) + REDACTED, value)


def scrub(value: Any, key: str = "") -> Any:
    """Recursive scrubber shared by every part of an event."""
    normalised = key.replace("-", "_")
    if key and is_credential_key(normalised):
        return REDACTED
    if key in LOCATION_KEYS:
        return REDACTED
    if key in PHONE_KEYS:
        return mask_phone(value)
    if isinstance(value, dict):
        return {k: scrub(v, str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [scrub(item) for item in value]
    if isinstance(value, str):
        return scrub_text(value)
    return value


def is_expected_rejection(hint: dict) -> bool:
    exc_info = hint.get("exc_info")
    if not exc_info:
        return False
    error = exc_info[1]
    return isinstance(error, SafeCampusError) and error.status_code < 500


def before_send(event: dict, hint: dict) -> Optional[dict]:
    if is_expected_rejection(hint):
        return None

    request = event.get("request")
    if isinstance(request, dict):
        if "cookies" in request:
            request["cookies"] = REDACTED
        for part in ("data", "headers", "query_string"):
            if part in request:
                request[part] = scrub(request[part])

    for part in ("extra", "contexts"):
        if isinstance(event.get(part), dict):
            event[part] = scrub(event[part])

    for breadcrumb in event.get("breadcrumbs", {}).get("values", []):
        if isinstance(breadcrumb.get("data"), dict):
            breadcrumb["data"] = scrub(breadcrumb["data"])
        if isinstance(breadcrumb.get("message"), str):
            breadcrumb["message"] = scrub_text(breadcrumb["message"])

    return event


def before_breadcrumb(breadcrumb: dict, hint: dict) -> Optional[dict]:
    # SQL statements against the documents table carry whole SOS documents
    if breadcrumb.get("category") == "query":
        breadcrumb.pop("data", None)
    return breadcrumb


def init_sentry(
    dsn: str,
    environment: str = "development",
    release: str = "safecampus@0.1.0",
    sample_rate: float = 1.0,
    traces_sample_rate: float = 0.1,
) -> bool:
    """
    Initialize Sentry error tracking.

    Returns:
        True when Sentry was initialised
    """
    if not dsn:
        logger.warning("Sentry DSN not configured, error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        sample_rate=sample_rate,
        traces_sample_rate=traces_sample_rate,
        before_send=before_send,
        before_breadcrumb=before_breadcrumb,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            AsyncioIntegration(),
            LoggingIntegration(level=None, event_level=None),
        ],
        send_default_pii=False,
        max_request_body_size="small",
    )
    logger.info("Sentry initialized", environment=environment, release=release)
    return True


def set_actor_context(actor_id: str, role: str) -> None:
    """Tag subsequent events with the caller (id and role only)."""
    sentry_sdk.set_user({"id": actor_id})
    sentry_sdk.set_tag("actor_role", role)


def capture_exception_with_context(
    exception: Exception,
    sos_id: Optional[str] = None,
    extra: Optional[dict] = None,
) -> Optional[str]:
    """Report one exception; returns the Sentry event id when enabled."""
    with sentry_sdk.new_scope() as scope:
        if sos_id:
            scope.set_tag("sos_id", sos_id)
        for key, value in scrub(extra or {}).items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(exception)
