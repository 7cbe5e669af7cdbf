"""Printer transport and protocol layer."""

from control_tower.printer.messages import (
    ConnectTransport,
    DisconnectTransport,
    PrinterCommand,
    PrinterResponse,
    TransportConnected,
    TransportDisconnected,
)
from control_tower.printer.protocol import PrinterProtocol
from control_tower.printer.transport import (
    SerialPrinterTransport,
    TransportError,
    TransportOpenError,
    TransportState,
)

__all__ = [
    "ConnectTransport",
    "DisconnectTransport",
    "PrinterCommand",
    "PrinterProtocol",
    "PrinterResponse",
    "SerialPrinterTransport",
    "TransportConnected",
    "TransportDisconnected",
    "TransportError",
    "TransportOpenError",
    "TransportState",
]
