"""Unit tests for transport layer exceptions."""

from __future__ import annotations

from webview_comm.protocol.exceptions import WebviewCommError
from webview_comm.transport.exceptions import TransportError


class TestTransportError:
    """Tests for TransportError."""

    def test_inherits_from_base_error(self):
        """Test that TransportError is a WebviewCommError."""
        assert issubclass(TransportError, WebviewCommError)

    def test_reason_only(self):
        """Test TransportError with reason only."""
        error = TransportError(reason="channel closed")
        assert error.reason == "channel closed"
        assert error.transport == "unknown"
        assert "channel closed" in str(error)

    def test_reason_and_transport(self):
        """Test TransportError with reason and transport name."""
        error = TransportError(reason="write failed", transport="stream")
        assert error.transport == "stream"
        assert "stream" in str(error)
