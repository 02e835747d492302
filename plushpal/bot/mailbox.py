"""
Bounded, ordered event mailbox for the conversation controller.

aiortc reports inbound tracks through synchronous callbacks, which post
events here without blocking. The control-channel pump awaits put() instead,
so a burst of messages waits for space rather than being dropped. The
controller's single processing loop consumes events one at a time in arrival
order.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from plushpal.config.constants import LOGGER_NAME, MAILBOX_SIZE

logger = logging.getLogger(LOGGER_NAME)


class EventKind(str, Enum):
    CHANNEL_MESSAGE = "channel_message"
    CHANNEL_CLOSED = "channel_closed"
    INBOUND_TRACK = "inbound_track"


@dataclass(frozen=True)
class ControllerEvent:
    kind: EventKind
    payload: Any = None


class Mailbox:
    """FIFO queue of ControllerEvents with a fixed capacity."""

    def __init__(self, maxsize: int = MAILBOX_SIZE):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def post(self, event: ControllerEvent) -> bool:
        """
        Post an event from a synchronous callback.

        Returns:
            bool: False if the mailbox was full and the event was not accepted
        """
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            logger.error(f"Controller mailbox full, dropping {event.kind.value} event")
            return False

    async def put(self, event: ControllerEvent) -> None:
        """Post an event, waiting for space if the mailbox is full."""
        await self._queue.put(event)

    async def get(self) -> ControllerEvent:
        return await self._queue.get()

    def qsize(self) -> int:
        return self._queue.qsize()

    def clear(self) -> int:
        """Discard pending events; returns how many were dropped."""
        dropped = 0
        while not self._queue.empty():
            self._queue.get_nowait()
            dropped += 1
        return dropped
