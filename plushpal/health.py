"""
HTTP health endpoint for a running PlushPal client.

Exposes the conversation state and the connectivity transitions observed by
the ConnectionMonitor so a supervisor (systemd, a dashboard) can check on a
headless device.
"""

import contextlib

import uvicorn
from fastapi import FastAPI

from plushpal import __version__
from plushpal.bot.controller import ConversationController


class HealthServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM handling to the CLI."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


def create_health_app(controller: ConversationController) -> FastAPI:
    """
    Build the FastAPI application serving /health and /.

    Args:
        controller: The controller whose status is reported

    Returns:
        FastAPI: The application, ready to be served by uvicorn
    """
    app = FastAPI(
        title="PlushPal",
        description="Headless OpenAI Realtime API voice client",
        version=__version__,
    )

    @app.get("/health")
    async def health_check():
        """Report conversation state, connectivity and audio counters.

        Status is "degraded" when the peer connection or ICE transport has
        failed or disconnected; no recovery is attempted either way.
        """
        return {
            "status": "healthy" if controller.monitor.healthy else "degraded",
            **controller.status(),
        }

    @app.get("/")
    async def root():
        return {
            "name": "PlushPal",
            "description": "Headless OpenAI Realtime API voice client",
            "version": __version__,
            "endpoints": {
                "/health": "Conversation and connection status",
            },
        }

    return app
