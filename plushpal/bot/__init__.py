"""
Realtime conversation core for PlushPal.

This module wires a local microphone/speaker to OpenAI's Realtime API over
WebRTC: audio travels on the media path, control events on the "oai-events"
data channel.

Key components:
- ConversationController: State machine (Idle, Negotiating, Active, Terminating)
  that negotiates the peer connection and starts/stops audio capture.
- EventChannel: JSON control messages over the data channel, with an ordered
  receive() sequence and a send() that refuses to queue before the channel opens.
- AudioPipeline: Outbound capture track and a single-worker render path for
  inbound media tracks and control-channel audio chunks.
- ConnectionMonitor: Records connection and ICE state transitions for logs and
  the health endpoint; it never attempts recovery.
- Mailbox: Bounded FIFO through which aiortc callbacks reach the controller.

Usage example:
```python
import asyncio

from plushpal.bot import ConversationController
from plushpal.config.settings import Settings

async def talk():
    controller = ConversationController(Settings.from_env())
    await controller.begin()
    await asyncio.sleep(30)
    await controller.end()

asyncio.run(talk())
```
"""

from plushpal.bot.audio_pipeline import AudioPipeline, CaptureTrack
from plushpal.bot.controller import ConversationController
from plushpal.bot.event_channel import EventChannel
from plushpal.bot.mailbox import ControllerEvent, EventKind, Mailbox
from plushpal.bot.monitor import ConnectionMonitor

__all__ = [
    "AudioPipeline",
    "CaptureTrack",
    "ConnectionMonitor",
    "ControllerEvent",
    "ConversationController",
    "EventChannel",
    "EventKind",
    "Mailbox",
]
