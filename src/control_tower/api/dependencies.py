"""FastAPI dependency injection for shared application state."""

from control_tower.core.config import Settings
from control_tower.printer.protocol import PrinterProtocol
from control_tower.printer.transport import SerialPrinterTransport


class AppState:
    """Holds shared application state instances.

    Created during app startup and accessed via FastAPI dependencies.
    """

    def __init__(self) -> None:
        self.settings: Settings | None = None
        self.transport: SerialPrinterTransport | None = None
        self.protocol: PrinterProtocol | None = None

    async def replace_transport(self) -> SerialPrinterTransport:
        """Swap a failed transport for a fresh instance and start it.

        A transport that could not open its port refuses further messages,
        so retrying a connect means building a new one.
        """
        assert self.settings is not None and self.protocol is not None, "App not initialized"
        if self.transport is not None:
            await self.transport.stop()

        self.transport = SerialPrinterTransport.from_settings(self.settings, self.protocol)
        self.protocol.attach(self.transport)
        await self.transport.start()
        return self.transport


# Global app state singleton
app_state = AppState()


def get_transport() -> SerialPrinterTransport:
    """Get the serial transport instance."""
    assert app_state.transport is not None, "App not initialized"
    return app_state.transport


def get_protocol() -> PrinterProtocol:
    """Get the printer protocol instance."""
    assert app_state.protocol is not None, "App not initialized"
    return app_state.protocol


def get_settings() -> Settings:
    """Get the settings instance."""
    assert app_state.settings is not None, "App not initialized"
    return app_state.settings
