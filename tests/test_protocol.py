"""Unit tests for the printer protocol layer."""

import asyncio
from unittest.mock import MagicMock

import pytest

from control_tower.printer.messages import (
    ConnectTransport,
    DisconnectTransport,
    PrinterCommand,
    PrinterResponse,
    TransportConnected,
    TransportDisconnected,
)
from control_tower.printer.protocol import PrinterProtocol


class TestPrinterProtocol:
    """Tests for PrinterProtocol."""

    def _make_protocol(self, history: int = 100) -> tuple[PrinterProtocol, MagicMock]:
        """Create a protocol attached to a mock transport."""
        protocol = PrinterProtocol(history=history)
        transport = MagicMock()
        protocol.attach(transport)
        return protocol, transport

    def test_initially_disconnected(self):
        """A new protocol reports disconnected and has no history."""
        protocol = PrinterProtocol()

        assert protocol.connected is False
        assert protocol.history == []

    def test_tracks_connection_state(self):
        """Connected/disconnected notifications update the state."""
        protocol, _ = self._make_protocol()

        protocol.tell(TransportConnected())
        assert protocol.connected is True

        protocol.tell(TransportDisconnected())
        assert protocol.connected is False

    def test_history_is_bounded(self):
        """Only the most recent responses are kept."""
        protocol, _ = self._make_protocol(history=3)

        for i in range(5):
            protocol.tell(PrinterResponse(line=f"line {i}"))

        assert protocol.history == ["line 2", "line 3", "line 4"]

    def test_unexpected_message_ignored(self):
        """Unknown messages are logged and otherwise ignored."""
        protocol, _ = self._make_protocol()

        protocol.tell(object())

        assert protocol.connected is False
        assert protocol.history == []

    def test_send_string_wraps_command(self):
        """send() wraps plain strings into PrinterCommand."""
        protocol, transport = self._make_protocol()

        protocol.send("G28")

        transport.tell.assert_called_once_with(PrinterCommand(text="G28"))

    def test_send_command_passes_through(self):
        """send() forwards PrinterCommand instances unchanged."""
        protocol, transport = self._make_protocol()
        command = PrinterCommand(text="M105")

        protocol.send(command)

        transport.tell.assert_called_once_with(command)

    def test_send_does_not_wait_for_connection(self):
        """Commands are forwarded regardless of connection state."""
        protocol, transport = self._make_protocol()

        protocol.send("M105")
        protocol.send("M105")

        assert transport.tell.call_count == 2

    def test_connect_and_disconnect(self):
        """connect()/disconnect() send lifecycle requests."""
        protocol, transport = self._make_protocol()

        protocol.connect()
        protocol.disconnect()

        assert [c.args[0] for c in transport.tell.call_args_list] == [
            ConnectTransport(),
            DisconnectTransport(),
        ]

    def test_send_without_transport(self):
        """Sending with no transport attached raises RuntimeError."""
        protocol = PrinterProtocol()

        with pytest.raises(RuntimeError, match="No transport"):
            protocol.send("G28")

    @pytest.mark.asyncio
    async def test_wait_for_response(self):
        """wait_for_response returns queued lines in order."""
        protocol, _ = self._make_protocol()

        protocol.tell(PrinterResponse(line="ok"))
        protocol.tell(PrinterResponse(line="ok T:21.0"))

        assert await protocol.wait_for_response(timeout=0.1) == "ok"
        assert await protocol.wait_for_response(timeout=0.1) == "ok T:21.0"

    @pytest.mark.asyncio
    async def test_wait_for_response_timeout(self):
        """wait_for_response returns None on timeout."""
        protocol, _ = self._make_protocol()

        assert await protocol.wait_for_response(timeout=0.05) is None

    @pytest.mark.asyncio
    async def test_wait_connected(self):
        """wait_connected resolves once TransportConnected arrives."""
        protocol, _ = self._make_protocol()

        waiter = asyncio.create_task(protocol.wait_connected(timeout=1.0))
        await asyncio.sleep(0)
        protocol.tell(TransportConnected())

        assert await waiter is True

    @pytest.mark.asyncio
    async def test_wait_disconnected_initially_set(self):
        """wait_disconnected returns immediately before any connect."""
        protocol, _ = self._make_protocol()

        assert await protocol.wait_disconnected(timeout=0.05) is True
        assert await protocol.wait_connected(timeout=0.05) is False

    @pytest.mark.asyncio
    async def test_response_queue_full_drops_oldest(self):
        """When the response queue is full, the oldest line is dropped."""
        protocol, _ = self._make_protocol(history=1000)

        for i in range(257):
            protocol.tell(PrinterResponse(line=str(i)))

        assert protocol._responses.full()
        assert await protocol.wait_for_response(timeout=0.1) == "1"

    def test_clear(self):
        """clear() drops history and pending responses."""
        protocol, _ = self._make_protocol()
        protocol.tell(PrinterResponse(line="ok"))

        protocol.clear()

        assert protocol.history == []
        assert protocol._responses.empty()
