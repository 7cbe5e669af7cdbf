"""Shared test fixtures."""

import asyncio
import queue
import threading
from collections.abc import Callable

import pytest

# Upper bound for a blocked readline() so stray worker threads never hang the run.
READ_TIMEOUT = 5.0


class FakeSerial:
    """Stand-in for serial.Serial that records writes and serves queued lines."""

    def __init__(self, open_error: Exception | None = None) -> None:
        self.port = None
        self.baudrate = None
        self.bytesize = None
        self.parity = None
        self.stopbits = None
        self.timeout = 0.0
        self.write_timeout = None
        self.is_open = False
        self.open_error = open_error
        self.write_error: Exception | None = None
        self.cancel_error: Exception | None = None
        self.cancel_read_error: Exception | None = None
        self.writes: list[bytes] = []
        self.open_calls = 0
        self.close_calls = 0
        self.readline_calls = 0
        self.active_reads = 0
        self.max_active_reads = 0
        self._lock = threading.Lock()
        self._incoming: queue.Queue = queue.Queue()

    # -- serial.Serial surface used by the transport -------------------------

    def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self.is_open = True

    def close(self) -> None:
        self.close_calls += 1
        self.is_open = False

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(data)
        return len(data)

    def cancel_read(self) -> None:
        if self.cancel_read_error is not None:
            raise self.cancel_read_error
        self._incoming.put(self.cancel_error if self.cancel_error is not None else b"")

    def readline(self) -> bytes:
        with self._lock:
            self.readline_calls += 1
            self.active_reads += 1
            self.max_active_reads = max(self.max_active_reads, self.active_reads)
        try:
            try:
                item = self._incoming.get(timeout=READ_TIMEOUT)
            except queue.Empty:
                return b""
            if isinstance(item, Exception):
                raise item
            return item
        finally:
            with self._lock:
                self.active_reads -= 1

    # -- test helpers --------------------------------------------------------

    def feed(self, *lines: str) -> None:
        """Make the device emit the given lines."""
        for line in lines:
            self._incoming.put(f"{line}\n".encode())

    def feed_raw(self, data: bytes) -> None:
        self._incoming.put(data)

    def fail_read(self, error: Exception) -> None:
        """Make the pending (or next) readline() raise."""
        self._incoming.put(error)

    @property
    def written(self) -> str:
        return b"".join(self.writes).decode()


class RecordingProtocol:
    """Protocol stand-in that records everything the transport tells it."""

    def __init__(self) -> None:
        self.messages: list = []

    def tell(self, message) -> None:
        self.messages.append(message)

    def of_type(self, cls: type) -> list:
        return [m for m in self.messages if isinstance(m, cls)]


async def _eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError(f"Condition not met within {timeout}s")
        await asyncio.sleep(0.01)


@pytest.fixture
def fake_serial() -> FakeSerial:
    """A closed fake serial port."""
    return FakeSerial()


@pytest.fixture
def recorder() -> RecordingProtocol:
    """A protocol sink recording transport notifications."""
    return RecordingProtocol()


@pytest.fixture
def eventually():
    """Poll a predicate until it holds, failing after a timeout."""
    return _eventually


@pytest.fixture
def make_fake_serial() -> Callable[..., FakeSerial]:
    """Factory for additional fake ports (e.g. one per reconnect)."""
    return FakeSerial
