"""
Domain Error Taxonomy

Every failure a service can surface to a caller is one of these.
The HTTP layer maps each class to a status code; in-process callers
catch them directly.

SECURITY: InvalidSOSTokenError carries one fixed message for every
failed token check so callers cannot learn whether an SOS id exists.
"""

from typing import Optional


class SafeCampusError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    message: str = "Internal error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)
        self.message = message or self.message


class SOSAlreadyActiveError(SafeCampusError):
    """The user already has an unresolved SOS event."""

    status_code = 409
    message = "You already have an active SOS alert"

    def __init__(self, sos_id: Optional[str] = None, message: Optional[str] = None) -> None:
        super().__init__(message)
        self.sos_id = sos_id


class NotFoundError(SafeCampusError):
    """Referenced document does not exist."""

    status_code = 404
    message = "Resource not found"

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class InvalidSOSTokenError(SafeCampusError):
    """Token missing, wrong, inactive or expired (deliberately indistinguishable)."""

    status_code = 401
    message = "Invalid or expired SOS token"

    def __init__(self) -> None:
        super().__init__()


class PermissionDeniedError(SafeCampusError):
    """Caller role or identity may not perform the operation."""

    status_code = 403
    message = "Not permitted"


class InvalidTransitionError(SafeCampusError):
    """Requested state change is not allowed from the current state."""

    status_code = 409
    message = "Invalid state transition"


class StoreUnavailableError(SafeCampusError):
    """
    Backing store could not be reached.

    Transient: the caller decides whether to retry.
    """

    status_code = 503
    message = "Storage temporarily unavailable"


class TrackingBridgeError(SafeCampusError):
    """Native background tracking could not be started or stopped."""

    message = "Background tracking unavailable"


class PushDeliveryError(SafeCampusError):
    """A push notification could not be delivered."""

    status_code = 502
    message = "Push delivery failed"
