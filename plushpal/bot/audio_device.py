"""
PyAudio-backed duplex audio device.

The device reads and writes blocks of 16-bit signed PCM. All calls block and
are meant to be run in a worker thread by the audio pipeline.
"""

import logging
from typing import Optional

import pyaudio

from plushpal.config.constants import CHANNELS, FRAME_SAMPLES, LOGGER_NAME, SAMPLE_RATE

logger = logging.getLogger(LOGGER_NAME)

FORMAT = pyaudio.paInt16


class PyAudioDevice:
    """Microphone and speaker access through PortAudio."""

    def __init__(self, sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS,
                 frames_per_buffer: int = FRAME_SAMPLES,
                 input_device_index: Optional[int] = None,
                 output_device_index: Optional[int] = None):
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.input_device_index = input_device_index
        self.output_device_index = output_device_index
        self.p = None
        self.input_stream = None
        self.output_stream = None

    def _audio(self):
        if self.p is None:
            self.p = pyaudio.PyAudio()
        return self.p

    def open_input(self) -> None:
        if self.input_stream is not None:
            return
        self.input_stream = self._audio().open(
            format=FORMAT,
            channels=self.channels,
            rate=self.sample_rate,
            input=True,
            input_device_index=self.input_device_index,
            frames_per_buffer=self.frames_per_buffer,
        )
        logger.info(f"Microphone opened: {self.sample_rate}Hz, {self.channels} channel(s)")

    def read(self) -> bytes:
        """Read one block of frames_per_buffer samples."""
        if self.input_stream is None:
            raise OSError("Input stream is not open")
        return self.input_stream.read(self.frames_per_buffer, exception_on_overflow=False)

    def close_input(self) -> None:
        if self.input_stream is None:
            return
        stream, self.input_stream = self.input_stream, None
        stream.stop_stream()
        stream.close()
        logger.info("Microphone stopped")

    def open_output(self) -> None:
        if self.output_stream is not None:
            return
        self.output_stream = self._audio().open(
            format=FORMAT,
            channels=self.channels,
            rate=self.sample_rate,
            output=True,
            output_device_index=self.output_device_index,
            frames_per_buffer=self.frames_per_buffer,
        )
        logger.info(f"Speaker opened: {self.sample_rate}Hz, {self.channels} channel(s)")

    def write(self, pcm: bytes) -> None:
        if self.output_stream is None:
            raise OSError("Output stream is not open")
        self.output_stream.write(pcm)

    def close_output(self) -> None:
        if self.output_stream is None:
            return
        stream, self.output_stream = self.output_stream, None
        stream.stop_stream()
        stream.close()
        logger.info("Speaker stopped")

    def terminate(self) -> None:
        """Close both streams and release PortAudio."""
        self.close_input()
        self.close_output()
        if self.p is not None:
            self.p.terminate()
            self.p = None
