"""Serial transport for the printer.

Owns the serial port exclusively and shuttles lines between the wire and the
protocol layer. Messages are handled one at a time from an asyncio.Queue
mailbox; the only concurrent work is a single blocking ``readline()`` running
in a worker thread, whose outcome is posted back into the same mailbox.

Writes are performed as they arrive. Flow control is the protocol layer's job,
so this module never buffers, throttles or reorders outbound commands.
"""

import asyncio
import functools
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Protocol

import serial
from serial import SerialException

from control_tower.core.config import Settings
from control_tower.printer.messages import (
    ConnectTransport,
    DisconnectTransport,
    PrinterCommand,
    PrinterResponse,
    ReadCompleted,
    ReadFromPrinter,
    TransportConnected,
    TransportDisconnected,
)

logger = logging.getLogger(__name__)

NEWLINE = "\n"


class TransportState(str, Enum):
    """Lifecycle state of the transport."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class MessageSink(Protocol):
    """Anything that accepts messages, e.g. the protocol layer."""

    def tell(self, message: Any) -> None: ...


class TransportError(Exception):
    """Base class for transport errors."""


class TransportOpenError(TransportError):
    """The serial port could not be opened. Fatal for the transport instance."""


class SerialPrinterTransport:
    """Mailbox-driven serial transport with a continuous background read loop.

    While connected, exactly one ``readline()`` is in flight at any time: the
    next read is requested on entering CONNECTED and after each response has
    been forwarded to the protocol layer.
    """

    def __init__(
        self,
        port: str,
        baudrate: int,
        protocol: MessageSink,
        *,
        bytesize: int = serial.EIGHTBITS,
        parity: str = serial.PARITY_NONE,
        stopbits: float = serial.STOPBITS_ONE,
        write_timeout: float | None = None,
        encoding: str = "utf-8",
        serial_factory: Callable[[], serial.Serial] = serial.Serial,
    ):
        """
        Initialize the transport. Nothing is opened until ConnectTransport.

        Args:
            port: Serial port path (e.g., '/dev/ttyUSB0')
            baudrate: Communication speed
            protocol: Receiver of lifecycle notifications and responses
            bytesize: Number of data bits
            parity: Parity checking (serial.PARITY_*)
            stopbits: Number of stop bits
            write_timeout: Write timeout in seconds (None blocks until written)
            encoding: Text encoding used on the wire
            serial_factory: Creates an unopened serial port object
        """
        self.port = port
        self.baudrate = baudrate
        self.bytesize = bytesize
        self.parity = parity
        self.stopbits = stopbits
        self.write_timeout = write_timeout
        self.encoding = encoding
        self.newline = NEWLINE

        self._protocol = protocol
        self._serial_factory = serial_factory
        self._serial: serial.Serial | None = None
        self._state = TransportState.DISCONNECTED
        self._mailbox: asyncio.Queue[Any] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._session = 0
        self._reading = False
        self._failure: TransportOpenError | None = None
        self._stats = {
            "lines_written": 0,
            "lines_read": 0,
            "read_failures": 0,
            "write_failures": 0,
            "stale_reads_discarded": 0,
            "messages_dropped": 0,
        }

        # Late completions must be accepted in both states; see _on_read_completed.
        self._handlers: dict[TransportState, dict[type, Callable[[Any], None]]] = {
            TransportState.DISCONNECTED: {
                ConnectTransport: self._on_connect,
                ReadFromPrinter: self._on_read_request,
                ReadCompleted: self._on_read_completed,
            },
            TransportState.CONNECTED: {
                PrinterCommand: self._on_command,
                ReadFromPrinter: self._on_read_request,
                ReadCompleted: self._on_read_completed,
                DisconnectTransport: self._on_disconnect,
            },
        }

    @classmethod
    def from_settings(cls, settings: Settings, protocol: MessageSink, **kwargs: Any) -> "SerialPrinterTransport":
        """Create a transport from application settings."""
        return cls(
            settings.serial_port,
            settings.serial_baud,
            protocol,
            bytesize=settings.serial_bytesize,
            parity=settings.serial_parity,
            stopbits=settings.serial_stopbits,
            write_timeout=settings.write_timeout,
            encoding=settings.encoding,
            **kwargs,
        )

    # -- properties ----------------------------------------------------------

    @property
    def state(self) -> TransportState:
        """Current lifecycle state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Check if the port is open and the transport is CONNECTED."""
        return self._state is TransportState.CONNECTED and self._serial is not None

    @property
    def reads_in_flight(self) -> int:
        """Number of background reads outstanding for the current connection (0 or 1)."""
        return 1 if self._reading else 0

    @property
    def running(self) -> bool:
        """Whether the mailbox loop is active."""
        return self._task is not None and not self._task.done()

    @property
    def failed(self) -> bool:
        """Whether opening the port failed; the instance accepts no more messages."""
        return self._failure is not None

    @property
    def failure(self) -> TransportOpenError | None:
        """The error that made opening the port fail, if any."""
        return self._failure

    @property
    def stats(self) -> dict:
        """Get transport statistics."""
        return self._stats.copy()

    # -- mailbox -------------------------------------------------------------

    def tell(self, message: Any) -> None:
        """Post a message to the transport. Never blocks."""
        if self._failure is not None:
            self._stats["messages_dropped"] += 1
            logger.warning("Transport for %s has failed, refusing %r", self.port, message)
            return
        self._mailbox.put_nowait(message)

    async def start(self) -> None:
        """Start processing the mailbox."""
        if self.running:
            return

        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="serial-read")
        self._task = asyncio.create_task(self._run(), name=f"SerialPrinterTransport[{self.port}]")
        logger.info("Serial transport for %s started", self.port)

    async def stop(self) -> None:
        """Stop processing the mailbox, closing the port if it is still open."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except TransportOpenError:
                # Already recorded in self._failure and logged by _run().
                pass
            self._task = None

        if self._state is TransportState.CONNECTED:
            self._become_disconnected()

        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        logger.info("Serial transport for %s stopped", self.port)

    async def join(self) -> None:
        """Wait for the mailbox loop to end.

        Raises:
            TransportOpenError: If the loop ended because the port could not be opened
        """
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        """Consume the mailbox one message at a time."""
        while True:
            message = await self._mailbox.get()
            try:
                self._dispatch(message)
            except TransportOpenError as e:
                self._failure = e
                logger.error("%s", e)
                raise
            except Exception:
                logger.exception("Error handling %r", message)

    def _dispatch(self, message: Any) -> None:
        handlers = self._handlers[self._state]
        for cls in type(message).__mro__:
            handler = handlers.get(cls)
            if handler is not None:
                handler(message)
                return

        self._stats["messages_dropped"] += 1
        logger.warning("Ignoring %r while %s", message, self._state.value)

    # -- handlers ------------------------------------------------------------

    def _on_connect(self, message: ConnectTransport) -> None:
        """Open the port, notify the protocol and start the read loop."""
        logger.info("Connecting to serial port %s at %d baud", self.port, self.baudrate)
        try:
            self._serial = self._open_port()
        except (OSError, SerialException, ValueError) as e:
            raise TransportOpenError(f"Failed to open {self.port}: {e}") from e

        self._session += 1
        self._reading = False
        self._protocol.tell(TransportConnected())
        self._state = TransportState.CONNECTED
        logger.info("Successfully connected to %s", self.port)

        self.tell(ReadFromPrinter())

    def _on_disconnect(self, message: DisconnectTransport) -> None:
        """Notify the protocol and close the port."""
        logger.info("Disconnecting from %s", self.port)
        self._become_disconnected()

    def _on_command(self, command: PrinterCommand) -> None:
        """Write one command line to the port immediately."""
        if self._serial is None:
            logger.debug("Command for %s dropped, port is not open", self.port)
            return

        try:
            data = (command.serialize() + self.newline).encode(self.encoding)
        except UnicodeEncodeError as e:
            self._stats["messages_dropped"] += 1
            logger.warning("Cannot encode %r as %s, dropping it: %s", command, self.encoding, e)
            return

        try:
            self._serial.write(data)
        except (OSError, SerialException) as e:
            self._stats["write_failures"] += 1
            logger.error("Write error on %s: %s", self.port, e)
            self._become_disconnected()
            return

        self._stats["lines_written"] += 1
        logger.debug("Wrote %r", data)

    def _on_read_request(self, message: ReadFromPrinter) -> None:
        """Start a background read unless one is already in flight."""
        if self._serial is None or not self._serial.is_open:
            logger.debug("Read requested while %s is not open", self.port)
            return
        if self._reading:
            logger.debug("Read already in flight on %s", self.port)
            return

        self._start_read()

    def _on_read_completed(self, result: ReadCompleted) -> None:
        """Forward a completed read to the protocol and request the next one."""
        if self._state is not TransportState.CONNECTED or result.session != self._session:
            self._stats["stale_reads_discarded"] += 1
            logger.debug("Discarding read from closed session: %r", result)
            return

        self._reading = False

        if result.failed:
            self._stats["read_failures"] += 1
            logger.error("Read error on %s: %s", self.port, result.error)
            self._become_disconnected()
            return

        if result.data:
            response = PrinterResponse(line=self._decode(result.data))
            self._stats["lines_read"] += 1
            logger.debug("Received %r", response.line)
            self._protocol.tell(response)

        self.tell(ReadFromPrinter())

    # -- port helpers --------------------------------------------------------

    def _open_port(self) -> serial.Serial:
        """Create and open a serial port with the configured parameters."""
        ser = self._serial_factory()
        ser.port = self.port
        ser.baudrate = self.baudrate
        ser.bytesize = self.bytesize
        ser.parity = self.parity
        ser.stopbits = self.stopbits
        ser.timeout = None  # readline() blocks until a full line arrives
        ser.write_timeout = self.write_timeout
        ser.open()
        return ser

    def _close_port(self) -> None:
        """Release the port handle; the port is closed even if cancelling the read fails."""
        port, self._serial = self._serial, None
        self._reading = False
        if port is None:
            return

        # Unblock a pending readline(); its result will be discarded as stale.
        cancel_read = getattr(port, "cancel_read", None)
        if cancel_read is not None:
            try:
                cancel_read()
            except (OSError, SerialException) as e:
                logger.warning("Failed to cancel pending read on %s: %s", self.port, e)

        try:
            port.close()
        except (OSError, SerialException) as e:
            logger.error("Error closing serial port %s: %s", self.port, e)

    def _become_disconnected(self) -> None:
        """Notify the protocol, close the port and enter DISCONNECTED."""
        self._protocol.tell(TransportDisconnected())
        self._close_port()
        self._state = TransportState.DISCONNECTED
        logger.info("Disconnected from %s", self.port)

    def _start_read(self) -> None:
        """Run one readline() on the executor and post its outcome to the mailbox."""
        if self._serial is None or self._executor is None:
            logger.debug("Cannot start read on %s, transport is not running", self.port)
            return

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._executor, self._serial.readline)
        future.add_done_callback(functools.partial(self._deliver_read, self._session))
        self._reading = True

    def _deliver_read(self, session: int, future: asyncio.Future) -> None:
        """Post the outcome of a background read back into the mailbox."""
        if future.cancelled():
            return

        error = future.exception()
        if error is not None:
            self.tell(ReadCompleted(session, error=error))
        else:
            self.tell(ReadCompleted(session, data=future.result()))

    def _decode(self, data: bytes) -> str:
        """Decode a raw line and strip its terminator."""
        return data.decode(self.encoding, errors="replace").rstrip("\r\n")

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.stop()
