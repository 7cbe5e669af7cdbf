"""Core application functionality."""

from control_tower.core.config import Settings, setup_logging
from control_tower.core.models import CommandRequest, HealthResponse, StatusResponse

__all__ = [
    "CommandRequest",
    "HealthResponse",
    "Settings",
    "StatusResponse",
    "setup_logging",
]
