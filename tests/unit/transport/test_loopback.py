"""Unit tests for the in-memory loopback transport."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from webview_comm.transport.exceptions import TransportError
from webview_comm.transport.loopback import create_loopback_pair
from tests.helpers.channel import settle
from tests.helpers.expectations import expect_exception


class TestLoopbackDelivery:
    """Tests for message delivery between paired endpoints."""

    @pytest.mark.asyncio
    async def test_delivery_is_asynchronous(self):
        """Test that a send reaches the peer on a later loop iteration."""
        host, ui = create_loopback_pair()
        received = MagicMock()
        _ = ui.on_message(received)

        host.send({"id": "1", "kind": "PING", "timestamp": 5})
        received.assert_not_called()
        await settle(2)

        received.assert_called_once_with({"id": "1", "kind": "PING", "timestamp": 5})

    @pytest.mark.asyncio
    async def test_peer_gets_a_copy(self):
        """Test that the receiver never shares objects with the sender."""
        host, ui = create_loopback_pair()
        received: list[dict[str, object]] = []
        _ = ui.on_message(received.append)
        payload = {"rows": [1, 2]}

        host.send({"id": "1", "kind": "NOTIFICATION", "command": "syncState", "timestamp": 1, "payload": payload})
        payload["rows"].append(3)
        await settle(2)

        assert received[0]["payload"] == {"rows": [1, 2]}

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        """Test that an unsubscribed callback stops receiving."""
        host, ui = create_loopback_pair()
        received = MagicMock()
        unsubscribe = ui.on_message(received)
        unsubscribe()
        unsubscribe()

        host.send({"id": "1"})
        await settle(2)

        received.assert_not_called()

    @pytest.mark.asyncio
    async def test_drop_filter(self):
        """Test that matching outgoing messages are recorded but not delivered."""
        host, ui = create_loopback_pair()
        received: list[dict[str, object]] = []
        _ = ui.on_message(received.append)
        host.drop_outgoing = lambda wire: wire["kind"] == "REQUEST"

        host.send({"id": "1", "kind": "REQUEST"})
        host.send({"id": "2", "kind": "NOTIFICATION"})
        await settle(2)

        assert [m["id"] for m in received] == ["2"]
        assert len(host.sent) == 2
        assert host.sent_of_kind("REQUEST") == [{"id": "1", "kind": "REQUEST"}]


class TestLoopbackErrors:
    """Tests for refused sends."""

    @pytest.mark.asyncio
    async def test_send_on_closed_endpoint(self):
        """Test that a closed endpoint refuses to send."""
        host, _ui = create_loopback_pair()
        host.close()

        error = expect_exception(host.send, TransportError, {"id": "1"})

        assert error.reason == "channel closed"
        assert host.is_closed

    @pytest.mark.asyncio
    async def test_unserializable_payload(self):
        """Test that non-JSON values are refused."""
        host, _ui = create_loopback_pair()

        error = expect_exception(host.send, TransportError, {"id": "1", "payload": {1, 2}})

        assert "not serializable" in error.reason
        assert host.sent == []

    @pytest.mark.asyncio
    async def test_closed_receiver_drops(self):
        """Test that messages in flight to a closed endpoint are discarded."""
        host, ui = create_loopback_pair()
        received = MagicMock()
        _ = ui.on_message(received)

        host.send({"id": "1"})
        ui.close()
        await settle(2)

        received.assert_not_called()
