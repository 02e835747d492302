"""
Command-line entry point for PlushPal.

Press Enter to start a conversation and Enter again to stop it. Ctrl+C (or
SIGTERM) ends any conversation, releases the audio device and the peer
connection, and exits.

Usage:
    python -m plushpal [--log-level LEVEL] [--health-port PORT] [--self-test]
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

import dotenv
import uvicorn

from plushpal import __version__
from plushpal.bot.audio_device import PyAudioDevice
from plushpal.bot.controller import ConversationController
from plushpal.config.constants import LOGGER_NAME
from plushpal.config.logging_config import configure_logging
from plushpal.config.settings import Settings, audio_device_indexes
from plushpal.diagnostics import run_microphone_self_test
from plushpal.exceptions import ConfigurationError, PlushPalError
from plushpal.health import HealthServer, create_health_app
from plushpal.models.session import ConversationState

logger = logging.getLogger(LOGGER_NAME)

COMMAND_TOGGLE = "toggle"
COMMAND_QUIT = "quit"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Talk to the OpenAI Realtime API from the local microphone and speaker"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    parser.add_argument(
        "--health-port",
        type=int,
        default=None,
        help="Serve GET /health on this port (default: disabled)",
    )
    parser.add_argument(
        "--health-host",
        default="127.0.0.1",
        help="Host to bind the health endpoint to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--self-test",
        action="store_true",
        help="Record a few seconds from the microphone, play them back and exit",
    )
    parser.add_argument(
        "--self-test-seconds",
        type=float,
        default=5.0,
        help="Length of the self-test recording in seconds (default: 5)",
    )
    return parser.parse_args(argv)


async def toggle_conversation(controller: ConversationController,
                              begin_task: Optional[asyncio.Task]) -> Optional[asyncio.Task]:
    """
    Start a conversation when idle, otherwise end (or cancel) the current one.

    Returns:
        The task running begin(), if one was started
    """
    if controller.state is ConversationState.IDLE:
        return asyncio.create_task(start_conversation(controller))

    await controller.end()
    print("Conversation ended. Press Enter to start a new one.")
    if begin_task is not None:
        await asyncio.gather(begin_task, return_exceptions=True)
    return None


async def start_conversation(controller: ConversationController) -> None:
    try:
        await controller.begin()
    except PlushPalError as e:
        logger.error(f"Could not start conversation: {e}")
        print(f"Could not start conversation: {e}")
        return
    print("Recording started - speak into your microphone (press Enter to stop)")


async def run(controller: ConversationController, health_host: str = "127.0.0.1",
              health_port: Optional[int] = None) -> int:
    """Run the Enter-key toggle loop until stdin closes or a shutdown signal arrives."""
    loop = asyncio.get_running_loop()
    commands: asyncio.Queue = asyncio.Queue()

    def on_stdin():
        line = sys.stdin.readline()
        commands.put_nowait(COMMAND_QUIT if line == "" else COMMAND_TOGGLE)

    def on_signal():
        commands.put_nowait(COMMAND_QUIT)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, on_signal)
    loop.add_reader(sys.stdin.fileno(), on_stdin)

    server = None
    server_task = None
    if health_port:
        server = HealthServer(uvicorn.Config(
            create_health_app(controller),
            host=health_host,
            port=health_port,
            log_level="warning",
            access_log=False,
        ))
        server_task = asyncio.create_task(server.serve())
        logger.info(f"Health endpoint on http://{health_host}:{health_port}/health")

    print("\nPlushPal is ready!")
    print("Press Enter to start/stop a conversation, Ctrl+C to exit")

    begin_task = None
    try:
        while True:
            command = await commands.get()
            if command == COMMAND_QUIT:
                break
            begin_task = await toggle_conversation(controller, begin_task)
    finally:
        logger.info("Cleaning up...")
        loop.remove_reader(sys.stdin.fileno())
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await controller.close()
        if begin_task is not None:
            await asyncio.gather(begin_task, return_exceptions=True)
        if server is not None:
            server.should_exit = True
            await server_task
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Load environment variables from .env file if it exists
    env_path = Path(".") / ".env"
    if env_path.exists():
        dotenv.load_dotenv(env_path)

    configure_logging(args.log_level)
    logger.info(f"Starting PlushPal {__version__}")

    try:
        if args.self_test:
            input_index, output_index = audio_device_indexes()
            device = PyAudioDevice(input_device_index=input_index, output_device_index=output_index)
            path = asyncio.run(run_microphone_self_test(device, args.self_test_seconds))
            print(f"Self-test recording: {path}")
            return 0

        settings = Settings.from_env()
    except ConfigurationError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        if not os.getenv("OPENAI_API_KEY"):
            print("Please set it using: export OPENAI_API_KEY='your-api-key'")
        return 1
    except PlushPalError as e:
        logger.error(f"Self-test failed: {e}")
        return 1

    controller = ConversationController(settings)
    return asyncio.run(run(controller, args.health_host, args.health_port))


if __name__ == "__main__":
    sys.exit(main())
