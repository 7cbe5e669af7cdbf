"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from control_tower import __version__
from control_tower.api.dependencies import app_state
from control_tower.api.routes import router as printer_router
from control_tower.core.config import Settings, setup_logging
from control_tower.core.models import HealthResponse
from control_tower.printer.protocol import PrinterProtocol
from control_tower.printer.transport import SerialPrinterTransport

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = app_state.settings or Settings()
    app_state.settings = settings

    setup_logging(settings.log_level)
    logger.info("Starting Control Tower v%s", __version__)

    app_state.protocol = PrinterProtocol(history=settings.response_history)
    app_state.transport = SerialPrinterTransport.from_settings(settings, app_state.protocol)
    app_state.protocol.attach(app_state.transport)

    await app_state.transport.start()

    if settings.auto_connect:
        logger.info("Connecting to %s on startup", settings.serial_port)
        app_state.protocol.connect()

    yield

    # Shutdown
    logger.info("Shutting down...")
    if app_state.transport is not None:
        await app_state.transport.stop()


app = FastAPI(
    title="Control Tower",
    description="REST control surface for serial-attached 3D printers",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(printer_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Control Tower",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    transport = app_state.transport

    if transport is None or transport.failed:
        return HealthResponse(status="unhealthy", printer_connected=False)

    connected = transport.connected
    return HealthResponse(
        status="healthy" if connected else "degraded",
        printer_connected=connected,
    )


def main():
    """Run the application (for CLI entry point)."""
    import uvicorn

    settings = Settings()
    setup_logging(settings.log_level)
    app_state.settings = settings

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
