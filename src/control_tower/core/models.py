"""API models for Control Tower."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CommandRequest(BaseModel):
    """Request model for sending a command to the printer."""

    command: str = Field(..., min_length=1, description="Command line, without terminator")

    @field_validator("command")
    @classmethod
    def validate_single_line(cls, v: str) -> str:
        """Reject commands that would span more than one line on the wire."""
        if "\n" in v or "\r" in v:
            raise ValueError("Command must be a single line")
        if not v.strip():
            raise ValueError("Command cannot be empty")
        return v

    model_config = ConfigDict(json_schema_extra={"example": {"command": "G28"}})


class CommandResponse(BaseModel):
    """Response model for an accepted command."""

    success: bool = Field(True, description="Whether the command was handed to the transport")
    command: str = Field(..., description="Command that was sent")
    timestamp: datetime = Field(default_factory=datetime.now, description="Operation timestamp")


class StatusResponse(BaseModel):
    """Response model for transport status."""

    state: str = Field(..., description="Transport state (connected/disconnected)")
    port: str = Field(..., description="Serial port path")
    baudrate: int = Field(..., gt=0, description="Serial baud rate")
    failed: bool = Field(False, description="Whether the port could not be opened")
    error: str | None = Field(None, description="Open failure message, if any")
    stats: dict[str, int] = Field(default_factory=dict, description="Transport counters")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "state": "connected",
                "port": "/dev/ttyUSB0",
                "baudrate": 115200,
                "failed": False,
                "error": None,
                "stats": {"lines_written": 12, "lines_read": 14},
            }
        }
    )


class ResponsesResponse(BaseModel):
    """Response model for recent printer output."""

    timestamp: datetime = Field(default_factory=datetime.now, description="Snapshot timestamp")
    lines: list[str] = Field(default_factory=list, description="Response lines, oldest first")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    success: bool = Field(False, description="Operation success status")
    error: str = Field(..., description="Error message")
    detail: str | None = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status (healthy/degraded/unhealthy)")
    printer_connected: bool = Field(..., description="Whether the printer port is open")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "printer_connected": True,
            }
        }
    )
