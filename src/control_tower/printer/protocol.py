"""Minimal protocol layer sitting on top of the serial transport.

Tracks the connection state reported by the transport and keeps the most
recent printer responses. Commands are passed straight through: pacing and
flow control are left to callers.
"""

import asyncio
import logging
from collections import deque
from typing import Any

from control_tower.printer.messages import (
    ConnectTransport,
    DisconnectTransport,
    PrinterCommand,
    PrinterResponse,
    TransportConnected,
    TransportDisconnected,
)
from control_tower.printer.transport import MessageSink

logger = logging.getLogger(__name__)

_QUEUE_MAXSIZE = 256


class PrinterProtocol:
    """Receives transport notifications and forwards requests to it."""

    def __init__(self, history: int = 100) -> None:
        self._transport: MessageSink | None = None
        self._connected = False
        self._history: deque[str] = deque(maxlen=history)
        self._responses: asyncio.Queue[str] = asyncio.Queue(maxsize=_QUEUE_MAXSIZE)
        self._connected_event = asyncio.Event()
        self._disconnected_event = asyncio.Event()
        self._disconnected_event.set()

    def attach(self, transport: MessageSink) -> None:
        """Set the transport that requests are sent to."""
        self._transport = transport

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def history(self) -> list[str]:
        """Most recent response lines, oldest first."""
        return list(self._history)

    # -- messages from the transport -----------------------------------------

    def tell(self, message: Any) -> None:
        if isinstance(message, PrinterResponse):
            self._on_response(message)
        elif isinstance(message, TransportConnected):
            self._connected = True
            self._connected_event.set()
            self._disconnected_event.clear()
            logger.info("Printer connected")
        elif isinstance(message, TransportDisconnected):
            self._connected = False
            self._connected_event.clear()
            self._disconnected_event.set()
            logger.info("Printer disconnected")
        else:
            logger.warning("Unexpected message from transport: %r", message)

    def _on_response(self, response: PrinterResponse) -> None:
        self._history.append(response.line)
        if self._responses.full():
            # Drop oldest response to make room.
            try:
                self._responses.get_nowait()
            except asyncio.QueueEmpty:
                pass
        self._responses.put_nowait(response.line)

    # -- requests to the transport -------------------------------------------

    def _send(self, message: Any) -> None:
        if self._transport is None:
            raise RuntimeError("No transport attached")
        self._transport.tell(message)

    def connect(self) -> None:
        """Ask the transport to open the port."""
        self._send(ConnectTransport())

    def disconnect(self) -> None:
        """Ask the transport to close the port."""
        self._send(DisconnectTransport())

    def send(self, command: PrinterCommand | str) -> None:
        """Send a command to the printer without waiting for a reply."""
        if isinstance(command, str):
            command = PrinterCommand(text=command)
        self._send(command)

    async def wait_connected(self, timeout: float | None = None) -> bool:
        """Wait until the transport reports TransportConnected."""
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def wait_disconnected(self, timeout: float | None = None) -> bool:
        """Wait until the transport reports TransportDisconnected."""
        try:
            await asyncio.wait_for(self._disconnected_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def wait_for_response(self, timeout: float | None = None) -> str | None:
        """Wait for the next response line.

        Returns ``None`` on timeout.
        """
        try:
            return await asyncio.wait_for(self._responses.get(), timeout=timeout)
        except TimeoutError:
            return None

    def clear(self) -> None:
        """Forget response history and drain pending responses."""
        self._history.clear()
        while not self._responses.empty():
            try:
                self._responses.get_nowait()
            except asyncio.QueueEmpty:
                break
