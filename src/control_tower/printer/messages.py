"""Messages exchanged between the printer transport and the protocol layer.

Protocol -> Transport: ConnectTransport, DisconnectTransport, PrinterCommand.
Transport -> Protocol: TransportConnected, TransportDisconnected, PrinterResponse.

ReadFromPrinter and ReadCompleted never leave the transport; they drive its
background read loop.
"""

from pydantic import BaseModel, ConfigDict, Field


class _Signal(BaseModel):
    """Payload-free message; all instances of a signal type compare equal."""

    model_config = ConfigDict(frozen=True)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ConnectTransport(_Signal):
    """Request to open the serial port."""


class DisconnectTransport(_Signal):
    """Request to close the serial port."""


class TransportConnected(_Signal):
    """The serial port is open and ready."""


class TransportDisconnected(_Signal):
    """The serial port has been closed."""


class ReadFromPrinter(_Signal):
    """Start one blocking line read in the background."""


class PrinterCommand(BaseModel):
    """Outbound command, written to the printer as a single line.

    Subclasses override ``serialize()`` to render structured commands.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Command text without line terminator")

    def serialize(self) -> str:
        """Render the command as one line of text (without terminator)."""
        return self.text


class PrinterResponse(BaseModel):
    """One line of text read from the printer."""

    model_config = ConfigDict(frozen=True)

    line: str


class ReadCompleted:
    """Outcome of a background read, posted back into the transport mailbox.

    ``session`` identifies the connection the read was started on, so results
    arriving after a disconnect can be told apart from live ones.
    """

    __slots__ = ("session", "data", "error")

    def __init__(self, session: int, data: bytes = b"", error: BaseException | None = None):
        self.session = session
        self.data = data
        self.error = error

    @property
    def failed(self) -> bool:
        return self.error is not None

    def __repr__(self) -> str:
        if self.failed:
            return f"ReadCompleted(session={self.session}, error={self.error!r})"
        return f"ReadCompleted(session={self.session}, data={self.data!r})"
