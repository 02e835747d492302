"""
Conversation lifecycle controller.

ConversationController owns the single peer connection, control channel and
audio pipeline of the current conversation and sequences them through the
Idle -> Negotiating -> Active -> Terminating -> Idle state machine.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from aiortc import MediaStreamTrack, RTCPeerConnection

from plushpal.bot.audio_device import PyAudioDevice
from plushpal.bot.audio_pipeline import AudioPipeline
from plushpal.bot.event_channel import EventChannel
from plushpal.bot.mailbox import ControllerEvent, EventKind, Mailbox
from plushpal.bot.monitor import ConnectionMonitor
from plushpal.config.constants import DATA_CHANNEL_LABEL, LOGGER_NAME
from plushpal.config.settings import Settings
from plushpal.exceptions import (
    AuthError,
    ChannelNotReady,
    ConversationStateError,
    DeviceError,
    NegotiationError,
    PlushPalError,
)
from plushpal.models.events import (
    AudioChunkEvent,
    ErrorEvent,
    EventMessage,
    ResponseCreateEvent,
    ResponseOptions,
    ResponseStopEvent,
)
from plushpal.models.session import ConversationState, OfferCapabilities
from plushpal.services.credentials import CredentialBroker
from plushpal.services.signaling import SessionNegotiator

logger = logging.getLogger(LOGGER_NAME)


class ConversationController:
    """
    Top-level state machine for one spoken conversation at a time.

    begin() negotiates a fresh peer connection and starts capture; end()
    sends the stop directive and releases every resource. Inbound tracks and
    control messages are posted to a mailbox and handled by a single
    processing loop, one event at a time. A capture failure bypasses the
    mailbox and moves the conversation to Terminating immediately.

    Args:
        settings: Runtime configuration
        broker: Credential source (defaults to a CredentialBroker built from settings)
        peer_connection_factory: Creates the RTCPeerConnection for each conversation
        device_factory: Creates the audio device for each conversation
        monitor: Connectivity observer shared across conversations
    """

    def __init__(self, settings: Settings, broker: Optional[CredentialBroker] = None,
                 peer_connection_factory: Callable[[], RTCPeerConnection] = RTCPeerConnection,
                 device_factory: Optional[Callable[[], Any]] = None,
                 monitor: Optional[ConnectionMonitor] = None):
        self.settings = settings
        self.broker = broker or CredentialBroker(
            settings.api_key.get_secret_value(),
            sessions_url=settings.sessions_url,
            timeout=settings.http_timeout,
        )
        self._peer_connection_factory = peer_connection_factory
        self._device_factory = device_factory or (lambda: PyAudioDevice(
            input_device_index=settings.input_device_index,
            output_device_index=settings.output_device_index,
        ))
        self.monitor = monitor or ConnectionMonitor()

        self.state = ConversationState.IDLE
        self._pc: Optional[RTCPeerConnection] = None
        self._channel: Optional[EventChannel] = None
        self._pipeline: Optional[AudioPipeline] = None
        self._mailbox: Optional[Mailbox] = None
        self._begin_task: Optional[asyncio.Task] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._terminate_task: Optional[asyncio.Task] = None
        self.conversations_started = 0

    @property
    def peer_connection(self) -> Optional[RTCPeerConnection]:
        return self._pc

    @property
    def channel(self) -> Optional[EventChannel]:
        return self._channel

    @property
    def pipeline(self) -> Optional[AudioPipeline]:
        return self._pipeline

    async def begin(self) -> None:
        """
        Negotiate a connection and start the conversation.

        Raises:
            ConversationStateError: If a conversation is already negotiating, active or terminating
            AuthError: If the credential could not be obtained
            NegotiationError: If the SDP exchange failed
            DeviceError: If the microphone could not be opened
        """
        if self.state is not ConversationState.IDLE:
            raise ConversationStateError(
                f"Cannot begin a conversation while {self.state.value}"
            )

        self._set_state(ConversationState.NEGOTIATING)
        self._begin_task = asyncio.current_task()
        try:
            await self._negotiate()
            await self._activate()
        except asyncio.CancelledError:
            logger.info("Conversation cancelled during negotiation")
            await self._teardown()
            raise
        except Exception as e:
            logger.error(f"Failed to begin conversation: {e}")
            await self._teardown()
            raise
        finally:
            self._begin_task = None

    async def end(self) -> None:
        """
        End the current conversation. A no-op while idle.

        While negotiating, the in-flight begin() is cancelled and everything it
        wired so far is released.
        """
        if self.state is ConversationState.IDLE:
            logger.debug("No conversation to end")
            return
        if self.state is ConversationState.TERMINATING:
            logger.debug("Conversation already terminating")
            task = self._terminate_task
            if task is not None and task is not asyncio.current_task():
                await asyncio.gather(task, return_exceptions=True)
            return
        if self.state is ConversationState.NEGOTIATING:
            task = self._begin_task
            if task is not None and task is not asyncio.current_task():
                logger.info("Cancelling negotiation")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            return

        await self._terminate("ended by caller")

    async def close(self) -> None:
        """Release everything before process exit."""
        await self.end()

    def status(self) -> Dict[str, Any]:
        channel = self._channel
        return {
            "state": self.state.value,
            "conversations_started": self.conversations_started,
            "connection": self.monitor.snapshot(),
            "control_channel": None if channel is None else {
                "label": channel.label,
                "ready": channel.ready,
                "messages_sent": channel.messages_sent,
                "messages_received": channel.messages_received,
                "messages_rejected": channel.messages_rejected,
            },
            "audio": None if self._pipeline is None else self._pipeline.stats(),
        }

    # Negotiating

    async def _negotiate(self) -> None:
        settings = self.settings
        self._mailbox = Mailbox()

        credential = await self.broker.acquire_credential(settings.model, settings.voice)
        if credential.is_expired():
            raise AuthError("Ephemeral credential expired before negotiation")

        logger.info("Initializing WebRTC connection...")
        self._pc = self._peer_connection_factory()
        self.monitor.attach(self._pc)
        self._pc.on("track", self._on_track)
        self._channel = EventChannel(self._pc.createDataChannel(DATA_CHANNEL_LABEL))
        self._pipeline = AudioPipeline(self._device_factory(), on_capture_failed=self._on_capture_failed)

        negotiator = SessionNegotiator(
            self._pc, settings.model,
            realtime_url=settings.realtime_url,
            timeout=settings.http_timeout,
        )
        offer = await negotiator.create_offer(OfferCapabilities(), audio_track=self._pipeline.track)
        answer = await negotiator.negotiate(offer, credential)
        await negotiator.apply_answer(answer)
        logger.info("Connected to OpenAI Realtime API")

        await self._pipeline.start_render()

        logger.info("Waiting for control channel to open")
        try:
            await self._channel.wait_open(timeout=settings.channel_open_timeout)
        except asyncio.TimeoutError as e:
            raise NegotiationError(
                f"Control channel did not open within {settings.channel_open_timeout:g}s"
            ) from e

        self._pump_task = asyncio.create_task(self._pump_channel(self._channel, self._mailbox))
        self._loop_task = asyncio.create_task(self._process_events(self._mailbox))

    async def _activate(self) -> None:
        # Capture is live before the model is asked to respond
        await self._pipeline.start_capture()
        self._channel.send(ResponseCreateEvent(
            response=ResponseOptions(
                modalities=list(self.settings.modalities),
                instructions=self.settings.instructions,
            )
        ))
        logger.info("Started conversation")
        self._set_state(ConversationState.ACTIVE)
        self.conversations_started += 1

    def _on_track(self, track: MediaStreamTrack) -> None:
        if track.kind != "audio":
            logger.debug(f"Ignoring inbound {track.kind} track")
            return
        if self._mailbox is not None:
            self._mailbox.post(ControllerEvent(EventKind.INBOUND_TRACK, track))

    # Active

    async def _pump_channel(self, channel: EventChannel, mailbox: Mailbox) -> None:
        async for message in channel.receive():
            await mailbox.put(ControllerEvent(EventKind.CHANNEL_MESSAGE, message))
        await mailbox.put(ControllerEvent(EventKind.CHANNEL_CLOSED))

    async def _process_events(self, mailbox: Mailbox) -> None:
        while True:
            event = await mailbox.get()
            try:
                await self._dispatch(event)
            except PlushPalError as e:
                logger.error(f"Error handling {event.kind.value} event: {e}")

    async def _dispatch(self, event: ControllerEvent) -> None:
        if event.kind is EventKind.CHANNEL_MESSAGE:
            await self._handle_message(event.payload)
        elif event.kind is EventKind.INBOUND_TRACK:
            if self._pipeline is not None:
                self._pipeline.attach_inbound_track(event.payload)
        elif event.kind is EventKind.CHANNEL_CLOSED:
            logger.warning("Control channel closed while conversation is active")

    async def _handle_message(self, message: EventMessage) -> None:
        if isinstance(message, AudioChunkEvent):
            if self._pipeline is not None:
                await self._pipeline.play_chunk(message)
        elif isinstance(message, ErrorEvent):
            logger.error(f"Received error from OpenAI: {message.error}")
        else:
            logger.debug(f"Received event: {message.type}")

    def _on_capture_failed(self, error: DeviceError) -> None:
        logger.error(f"Capture failed, ending conversation: {error}")
        if self.state is not ConversationState.ACTIVE:
            return
        # Capture has already stopped, so leave Active before yielding
        self._set_state(ConversationState.TERMINATING)
        self._terminate_task = asyncio.create_task(self._terminate("capture device failure"))

    # Terminating

    async def _terminate(self, reason: str) -> None:
        self._set_state(ConversationState.TERMINATING)
        logger.info(f"Ending conversation ({reason})")
        try:
            if self._channel is not None:
                try:
                    self._channel.send(ResponseStopEvent())
                    logger.info("Stopped conversation")
                except ChannelNotReady as e:
                    logger.warning(f"Stop directive not sent: {e}")
        finally:
            await self._teardown()

    async def _teardown(self) -> None:
        current = asyncio.current_task()
        pipeline, channel, pc, mailbox = self._pipeline, self._channel, self._pc, self._mailbox
        self._pipeline = self._channel = self._pc = self._mailbox = None

        tasks = [task for task in (self._pump_task, self._loop_task)
                 if task is not None and task is not current]
        self._pump_task = self._loop_task = None

        try:
            if pipeline is not None:
                await pipeline.close()
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

            if channel is not None:
                channel.close()
            if pc is not None:
                try:
                    await pc.close()
                    logger.info("Peer connection closed")
                except Exception as e:
                    logger.error(f"Error closing peer connection: {e}", exc_info=True)
            if mailbox is not None:
                dropped = mailbox.clear()
                if dropped:
                    logger.debug(f"Discarded {dropped} unprocessed events")
            self._set_state(ConversationState.IDLE)

    def _set_state(self, state: ConversationState) -> None:
        if state is self.state:
            return
        logger.info(f"Conversation state: {self.state.value} -> {state.value}")
        self.state = state
