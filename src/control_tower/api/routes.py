"""API route handlers."""

from fastapi import APIRouter, Depends, HTTPException

from control_tower.api.dependencies import app_state, get_protocol, get_transport
from control_tower.core.models import (
    CommandRequest,
    CommandResponse,
    ErrorResponse,
    ResponsesResponse,
    StatusResponse,
)
from control_tower.printer.protocol import PrinterProtocol
from control_tower.printer.transport import SerialPrinterTransport

router = APIRouter(prefix="/api/printer")


def _status(transport: SerialPrinterTransport) -> StatusResponse:
    return StatusResponse(
        state=transport.state.value,
        port=transport.port,
        baudrate=transport.baudrate,
        failed=transport.failed,
        error=str(transport.failure) if transport.failure is not None else None,
        stats=transport.stats,
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(transport: SerialPrinterTransport = Depends(get_transport)):
    """Get serial transport state and counters."""
    return _status(transport)


@router.post("/connect", status_code=202, response_model=StatusResponse)
async def connect(
    transport: SerialPrinterTransport = Depends(get_transport),
    protocol: PrinterProtocol = Depends(get_protocol),
):
    """Ask the transport to open the serial port.

    The request is asynchronous; poll /status for the outcome.
    """
    if transport.failed:
        transport = await app_state.replace_transport()

    protocol.connect()
    return _status(transport)


@router.post("/disconnect", status_code=202, response_model=StatusResponse)
async def disconnect(
    transport: SerialPrinterTransport = Depends(get_transport),
    protocol: PrinterProtocol = Depends(get_protocol),
):
    """Ask the transport to close the serial port."""
    protocol.disconnect()
    return _status(transport)


@router.post(
    "/commands",
    status_code=202,
    response_model=CommandResponse,
    responses={503: {"model": ErrorResponse}},
)
async def send_command(
    request: CommandRequest,
    transport: SerialPrinterTransport = Depends(get_transport),
    protocol: PrinterProtocol = Depends(get_protocol),
):
    """Send one command line to the printer."""
    if transport.failed:
        raise HTTPException(status_code=503, detail=str(transport.failure))
    if not protocol.connected:
        raise HTTPException(status_code=503, detail="Printer not connected")

    protocol.send(request.command)
    return CommandResponse(command=request.command)


@router.get("/responses", response_model=ResponsesResponse)
async def get_responses(protocol: PrinterProtocol = Depends(get_protocol)):
    """Get recent lines received from the printer."""
    return ResponsesResponse(lines=protocol.history)
