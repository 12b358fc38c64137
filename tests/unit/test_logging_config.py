"""
Unit Tests for Log Scrubbing

SOS tokens and ID tokens must never reach a log sink.
"""

from safecampus.config.logging_config import REDACTED, mask_phone, scrub_event


class TestScrubEvent:
    """Credential redaction and phone masking."""

    def test_token_keys_redacted(self) -> None:
        event = scrub_event(None, "info", {
            "event": "Token cancel",
            "sos_id": "sos-1",
            "sos_token": "abc",
            "auth_token": "id-token",
        })

        assert event["sos_id"] == "sos-1"
        assert event["sos_token"] == REDACTED
        assert event["auth_token"] == REDACTED

    def test_nested_payloads(self) -> None:
        event = scrub_event(None, "info", {
            "request": {"Authorization": "Bearer x", "path": "/api/v1/sos"},
            "tokens": ["device-1", "device-2"],
        })

        assert event["request"] == {"Authorization": REDACTED, "path": "/api/v1/sos"}
        assert event["tokens"] == REDACTED

    def test_phone_masked(self) -> None:
        event = scrub_event(None, "info", {"user_phone": "+91-9000000001"})

        assert event["user_phone"] == "********0001"

    def test_short_or_missing_phone_untouched(self) -> None:
        assert mask_phone("N/A") == "N/A"
        assert mask_phone(None) is None
