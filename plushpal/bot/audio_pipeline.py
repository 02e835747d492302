"""
Bridge between the local duplex audio device and the WebRTC media transport.

Capture side: CaptureTrack is the outbound aiortc audio track. While capture
is active each recv() reads one block from the microphone; otherwise it yields
paced silence and never touches the device.

Render side: inbound media tracks and control-channel audio chunks feed a
single bounded render queue, drained by one worker that writes to the
speaker in arrival order. Render failures are logged and playback continues.
"""

import asyncio
import fractions
import io
import logging
import wave
from typing import Any, Callable, Dict, List, Optional

import av
import numpy as np
from aiortc import MediaStreamTrack
from aiortc.mediastreams import MediaStreamError

from plushpal.config.constants import (
    CHANNELS,
    FRAME_SAMPLES,
    LOGGER_NAME,
    RENDER_QUEUE_SIZE,
    SAMPLE_RATE,
    SAMPLE_WIDTH,
)
from plushpal.exceptions import DeviceError
from plushpal.models.events import AudioChunkEvent

logger = logging.getLogger(LOGGER_NAME)


def channel_layout(channels: int) -> str:
    return "mono" if channels == 1 else "stereo"


def pcm_to_frame(pcm: bytes, pts: int, sample_rate: int = SAMPLE_RATE,
                 channels: int = CHANNELS) -> av.AudioFrame:
    """Wrap interleaved s16 PCM in an av.AudioFrame with timing metadata."""
    frame = av.AudioFrame.from_ndarray(
        np.frombuffer(pcm, np.int16).reshape(1, -1),
        format="s16",
        layout=channel_layout(channels),
    )
    frame.sample_rate = sample_rate
    frame.pts = pts
    frame.time_base = fractions.Fraction(1, sample_rate)
    return frame


def extract_pcm(data: bytes, sample_rate: int = SAMPLE_RATE) -> bytes:
    """
    Return raw PCM from a control-channel audio payload.

    Payloads wrapped in a WAV container are unwrapped; anything else is
    assumed to already be raw PCM in the device format.
    """
    if data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        return data
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            if wf.getframerate() != sample_rate:
                logger.warning(
                    f"Audio chunk is {wf.getframerate()}Hz, device expects {sample_rate}Hz"
                )
            return wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as e:
        logger.warning(f"Dropping malformed WAV audio chunk: {e}")
        return b""


class CaptureTrack(MediaStreamTrack):
    """Outbound audio track fed by the pipeline's capture side."""

    kind = "audio"

    def __init__(self, pipeline: "AudioPipeline"):
        super().__init__()
        self._pipeline = pipeline
        self._timestamp = 0

    async def recv(self) -> av.AudioFrame:
        if self.readyState != "live":
            raise MediaStreamError

        pcm = await self._pipeline.next_capture_block()
        frame = pcm_to_frame(pcm, self._timestamp,
                             self._pipeline.sample_rate, self._pipeline.channels)
        # Increment by samples processed
        self._timestamp += frame.samples
        return frame


class AudioPipeline:
    """
    Binds one audio device to one peer connection for one conversation.

    Args:
        device: Duplex device with open_input/read/close_input,
            open_output/write/close_output and terminate
        on_capture_failed: Called with the fatal DeviceError as soon as a
            microphone read fails, outside any event queue
    """

    def __init__(self, device,
                 on_capture_failed: Optional[Callable[[DeviceError], None]] = None,
                 sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS,
                 frames_per_buffer: int = FRAME_SAMPLES,
                 render_queue_size: int = RENDER_QUEUE_SIZE):
        self.device = device
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.frame_duration = frames_per_buffer / sample_rate
        self._on_capture_failed = on_capture_failed
        self._silence = bytes(frames_per_buffer * channels * SAMPLE_WIDTH)

        self._capturing = False
        self._capture_lock = asyncio.Lock()
        self.capture_error: Optional[DeviceError] = None

        self._render_queue: asyncio.Queue = asyncio.Queue(maxsize=render_queue_size)
        self._render_task: Optional[asyncio.Task] = None
        self._track_tasks: List[asyncio.Task] = []

        self.frames_captured = 0
        self.blocks_rendered = 0
        self.render_failures = 0
        self.render_error: Optional[DeviceError] = None

        self.track = CaptureTrack(self)

    @property
    def capturing(self) -> bool:
        return self._capturing

    # Capture side

    async def start_capture(self) -> None:
        """
        Open the input device and start forwarding microphone blocks.

        Raises:
            DeviceError: If the input device cannot be opened (fatal)
        """
        async with self._capture_lock:
            if self._capturing:
                return
            try:
                await asyncio.to_thread(self.device.open_input)
            except OSError as e:
                raise DeviceError(f"Could not open input device: {e}", fatal=True) from e
            self.capture_error = None
            self._capturing = True
        logger.info("Capture started")

    async def stop_capture(self) -> None:
        async with self._capture_lock:
            if not self._capturing:
                return
            self._capturing = False
            self._close_input()
        logger.info("Capture stopped")

    async def next_capture_block(self) -> bytes:
        """Return the next outbound PCM block: microphone audio or paced silence."""
        async with self._capture_lock:
            if self._capturing:
                try:
                    pcm = await asyncio.to_thread(self.device.read)
                except OSError as e:
                    self._fail_capture(e)
                else:
                    self.frames_captured += 1
                    return pcm

        await asyncio.sleep(self.frame_duration)
        return self._silence

    def _fail_capture(self, cause: Exception) -> None:
        error = DeviceError(f"Capture device read failed: {cause}", fatal=True)
        self.capture_error = error
        logger.error(str(error))
        self._capturing = False
        self._close_input()
        if self._on_capture_failed is not None:
            self._on_capture_failed(error)

    def _close_input(self) -> None:
        try:
            self.device.close_input()
        except OSError as e:
            logger.warning(f"Error closing input device: {e}")

    # Render side

    async def start_render(self) -> None:
        """Open the output device and start the render worker."""
        if self._render_task is not None:
            return
        try:
            await asyncio.to_thread(self.device.open_output)
        except OSError as e:
            # Non-fatal: each write will fail and be logged until the device recovers
            logger.error(f"Could not open output device: {e}")
        self._render_task = asyncio.create_task(self._render_loop())

    async def play(self, pcm: bytes) -> None:
        """Queue a PCM block for playback, waiting if the render queue is full."""
        if pcm:
            await self._render_queue.put(pcm)

    async def play_chunk(self, event: AudioChunkEvent) -> None:
        """Queue audio delivered as a control-channel chunk."""
        try:
            data = event.audio.decode()
        except ValueError as e:
            logger.warning(f"Dropping undecodable audio chunk: {e}")
            return
        await self.play(extract_pcm(data, self.sample_rate))

    def attach_inbound_track(self, track: MediaStreamTrack) -> None:
        """Start rendering a remote audio track."""
        logger.info("Received audio track from Realtime API")
        self._track_tasks.append(asyncio.create_task(self._consume_track(track)))

    async def _consume_track(self, track: MediaStreamTrack) -> None:
        resampler = av.AudioResampler(
            format="s16", layout=channel_layout(self.channels), rate=self.sample_rate
        )
        while True:
            try:
                frame = await track.recv()
            except MediaStreamError:
                logger.info("Inbound audio track ended")
                return
            for converted in resampler.resample(frame):
                await self.play(converted.to_ndarray().tobytes())

    async def _render_loop(self) -> None:
        while True:
            pcm = await self._render_queue.get()
            try:
                await asyncio.to_thread(self.device.write, pcm)
            except OSError as e:
                self.render_failures += 1
                self.render_error = DeviceError(f"Audio render failed: {e}", fatal=False)
                logger.warning(f"{self.render_error}, continuing playback")
            else:
                self.blocks_rendered += 1

    # Lifecycle

    async def close(self) -> None:
        """Stop capture, cancel render work and release the device."""
        await self.stop_capture()
        self.track.stop()

        tasks = list(self._track_tasks)
        if self._render_task is not None:
            tasks.append(self._render_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._track_tasks = []
        self._render_task = None

        while not self._render_queue.empty():
            self._render_queue.get_nowait()

        try:
            await asyncio.to_thread(self.device.terminate)
        except OSError as e:
            logger.warning(f"Error releasing audio device: {e}")
        logger.info("Audio pipeline closed")

    def stats(self) -> Dict[str, Any]:
        return {
            "capturing": self._capturing,
            "frames_captured": self.frames_captured,
            "blocks_rendered": self.blocks_rendered,
            "render_failures": self.render_failures,
            "render_queue": self._render_queue.qsize(),
        }
