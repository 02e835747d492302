"""
Microphone self-test: record a few seconds and play them back.

This runs outside the conversation controller and never touches the network.
It is useful on a fresh device to confirm that the configured input and
output devices work before starting a conversation.
"""

import asyncio
import logging
import tempfile
import time
import wave
from pathlib import Path
from typing import Optional, Union

from plushpal.config.constants import LOGGER_NAME, SAMPLE_WIDTH
from plushpal.exceptions import DeviceError

logger = logging.getLogger(LOGGER_NAME)


async def record_to_wav(device, seconds: float, path: Path) -> int:
    """
    Record from the device's input into a WAV file.

    Returns:
        int: Number of blocks recorded
    """
    blocks = max(1, int(seconds * device.sample_rate / device.frames_per_buffer))
    frames = []
    try:
        await asyncio.to_thread(device.open_input)
        for _ in range(blocks):
            frames.append(await asyncio.to_thread(device.read))
    except OSError as e:
        raise DeviceError(f"Microphone test recording failed: {e}", fatal=True) from e
    finally:
        device.close_input()

    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(device.channels)
        wf.setsampwidth(SAMPLE_WIDTH)
        wf.setframerate(device.sample_rate)
        wf.writeframes(b"".join(frames))
    return len(frames)


async def play_wav(device, path: Path) -> None:
    """Play a WAV file through the device's output in block-sized writes."""
    with wave.open(str(path), "rb") as wf:
        block_bytes = device.frames_per_buffer * wf.getnchannels() * wf.getsampwidth()
        pcm = wf.readframes(wf.getnframes())
    try:
        await asyncio.to_thread(device.open_output)
        for offset in range(0, len(pcm), block_bytes):
            await asyncio.to_thread(device.write, pcm[offset:offset + block_bytes])
    except OSError as e:
        raise DeviceError(f"Microphone test playback failed: {e}") from e
    finally:
        device.close_output()


async def run_microphone_self_test(device, seconds: float = 5.0,
                                   output_dir: Optional[Union[str, Path]] = None) -> Path:
    """
    Record `seconds` of microphone input to a WAV file, then play it back.

    Args:
        device: Audio device (see plushpal.bot.audio_device.PyAudioDevice)
        seconds: Recording length
        output_dir: Where to write the WAV file (default: a new temp directory)

    Returns:
        Path: The recorded WAV file
    """
    directory = Path(output_dir) if output_dir else Path(tempfile.mkdtemp(prefix="plushpal-"))
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"mic-test-{time.strftime('%Y%m%d-%H%M%S')}.wav"

    try:
        logger.info(f"Saving {seconds:g} seconds of mic input to {path} for testing...")
        blocks = await record_to_wav(device, seconds, path)
        logger.info(f"Test recording saved to {path} ({blocks} blocks)")

        logger.info("Playing back test recording...")
        await play_wav(device, path)
        logger.info("Test recording played successfully - mic is working")
    finally:
        device.terminate()
    return path
