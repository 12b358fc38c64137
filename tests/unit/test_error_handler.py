"""
Unit Tests for Error Handler Helpers
"""

import pytest
from starlette.requests import Request

from safecampus.api.middleware.error_handler import correlation_id_for, sos_id_from_path


def request_with(correlation_id: str) -> Request:
    return Request({"type": "http", "headers": [(b"x-correlation-id", correlation_id.encode())]})


class TestCorrelationId:
    def test_well_formed_id_kept(self) -> None:
        assert correlation_id_for(request_with("req-42")) == "req-42"

    def test_malformed_id_replaced(self) -> None:
        generated = correlation_id_for(request_with("<script>"))

        assert generated != "<script>"
        assert len(generated) == 32


class TestSosIdFromPath:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/api/v1/sos/3f2a/resolve", "3f2a"),
            ("/api/v1/sos/3f2a", "3f2a"),
            ("/api/v1/sos/active", None),
            ("/api/v1/sos/history", None),
            ("/api/v1/sos/token/cancel", None),
            ("/api/v1/sos", None),
            ("/api/v1/safe-walks/w1", None),
        ],
    )
    def test_extracts_event_id(self, path: str, expected) -> None:
        assert sos_id_from_path(path) == expected
