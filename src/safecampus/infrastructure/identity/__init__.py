"""Identity verification port and adapters."""

from safecampus.infrastructure.identity.verifier import AuthenticationError, IdentityVerifier

__all__ = ["IdentityVerifier", "AuthenticationError"]
