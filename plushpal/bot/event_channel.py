"""
Control-message channel carried over the WebRTC data channel.

EventChannel wraps one RTCDataChannel for the lifetime of one connection. It
encodes outbound EventMessages, decodes inbound ones, and exposes them as an
ordered async sequence.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional, Union

from aiortc import RTCDataChannel

from plushpal.config.constants import LOGGER_NAME
from plushpal.exceptions import ChannelNotReady
from plushpal.models.events import EventMessage, decode_event, encode_event

logger = logging.getLogger(LOGGER_NAME)

_CLOSED = object()


class EventChannel:
    """
    Ordered, reliable control-message substrate over an RTCDataChannel.

    send() fails with ChannelNotReady until the data channel is open; nothing
    is queued for later delivery. receive() yields inbound messages in arrival
    order until the channel closes.
    """

    def __init__(self, channel: RTCDataChannel):
        self._channel = channel
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._opened = asyncio.Event()
        self._closed = False
        self.messages_sent = 0
        self.messages_received = 0
        self.messages_rejected = 0

        channel.on("open", self._on_open)
        channel.on("message", self._on_message)
        channel.on("close", self._on_close)

        if channel.readyState == "open":
            self._opened.set()

    @property
    def label(self) -> str:
        return self._channel.label

    @property
    def ready(self) -> bool:
        return not self._closed and self._channel.readyState == "open"

    @property
    def closed(self) -> bool:
        return self._closed

    async def wait_open(self, timeout: Optional[float] = None) -> None:
        """
        Suspend until the data channel is open.

        Raises:
            ChannelNotReady: If the channel closes before opening
            asyncio.TimeoutError: If a timeout is given and expires
        """
        if timeout is None:
            await self._opened.wait()
        else:
            await asyncio.wait_for(self._opened.wait(), timeout=timeout)
        if self._closed:
            raise ChannelNotReady(f"Data channel '{self.label}' closed before opening")

    def send(self, message: EventMessage) -> None:
        """
        Send a message on the control channel.

        Raises:
            ChannelNotReady: If the data channel is not open
        """
        if not self.ready:
            raise ChannelNotReady(
                f"Data channel '{self.label}' is {self._channel.readyState}; cannot send {message.type}"
            )
        self._channel.send(encode_event(message))
        self.messages_sent += 1
        logger.debug(f"Sent event: {message.type}")

    async def receive(self) -> AsyncIterator[EventMessage]:
        """Yield inbound messages in arrival order until the channel closes."""
        while True:
            item = await self._inbound.get()
            if item is _CLOSED:
                return
            yield item

    def close(self) -> None:
        if self._channel.readyState not in ("closing", "closed"):
            self._channel.close()
        self._on_close()

    def _on_open(self) -> None:
        logger.info(f"Data channel '{self.label}' open")
        self._opened.set()

    def _on_message(self, data: Union[str, bytes]) -> None:
        try:
            message = decode_event(data)
        except ValueError as e:
            self.messages_rejected += 1
            logger.warning(f"Ignoring undecodable control message: {e}")
            return
        self.messages_received += 1
        logger.debug(f"Received event: {message.type}")
        self._inbound.put_nowait(message)

    def _on_close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info(f"Data channel '{self.label}' closed")
        self._inbound.put_nowait(_CLOSED)
        # Release anyone blocked in wait_open()
        self._opened.set()
