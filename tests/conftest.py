import asyncio
import json
import logging
import time
from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from aiortc import RTCSessionDescription
from aiortc.exceptions import InvalidStateError
from aiortc.mediastreams import MediaStreamError

from plushpal.config.constants import FRAME_SAMPLES, LOGGER_NAME, SAMPLE_RATE
from plushpal.config.settings import Settings
from plushpal.models.session import Credential
from plushpal.services.credentials import CredentialBroker

OFFER_SDP = "v=0\r\no=- 1 1 IN IP4 0.0.0.0\r\ns=-\r\nt=0 0\r\nm=audio 9 UDP/TLS/RTP/SAVPF 111\r\n"
ANSWER_SDP = "v=0\r\no=- 2 2 IN IP4 0.0.0.0\r\ns=-\r\nt=0 0\r\nm=audio 9 UDP/TLS/RTP/SAVPF 111\r\n"


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)

    # configure_logging() turns propagation off, which hides records from caplog
    app_logger = logging.getLogger(LOGGER_NAME)
    for handler in app_logger.handlers[:]:
        app_logger.removeHandler(handler)
        handler.close()
    app_logger.setLevel(logging.NOTSET)
    app_logger.propagate = True
    yield


class EventEmitterMixin:
    """Minimal pyee-style on()/emit() used by the aiortc fakes."""

    def _init_handlers(self):
        self._handlers = defaultdict(list)

    def on(self, event, handler=None):
        if handler is None:
            def decorator(fn):
                self._handlers[event].append(fn)
                return fn
            return decorator
        self._handlers[event].append(handler)
        return handler

    def emit(self, event, *args):
        for handler in list(self._handlers[event]):
            handler(*args)


class FakeDataChannel(EventEmitterMixin):
    """Stand-in for aiortc.RTCDataChannel"""

    def __init__(self, label="oai-events"):
        self._init_handlers()
        self.label = label
        self.readyState = "connecting"
        self.sent = []

    def open(self):
        self.readyState = "open"
        self.emit("open")

    def send(self, data):
        if self.readyState != "open":
            raise InvalidStateError("RTCDataChannel is not open")
        self.sent.append(data)

    def close(self):
        if self.readyState == "closed":
            return
        self.readyState = "closed"
        self.emit("close")

    def deliver(self, message):
        """Simulate an inbound message from the remote peer"""
        if not isinstance(message, (str, bytes)):
            message = json.dumps(message)
        self.emit("message", message)

    def sent_messages(self):
        return [json.loads(data) for data in self.sent]

    def sent_types(self):
        return [message["type"] for message in self.sent_messages()]


class FakePeerConnection(EventEmitterMixin):
    """Stand-in for aiortc.RTCPeerConnection"""

    def __init__(self, open_channels_on_answer=True):
        self._init_handlers()
        self.open_channels_on_answer = open_channels_on_answer
        self.connectionState = "new"
        self.iceConnectionState = "new"
        self.localDescription = None
        self.remoteDescription = None
        self.channels = []
        self.tracks = []
        self.transceivers = []
        self.closed = False

    def createDataChannel(self, label):
        channel = FakeDataChannel(label)
        self.channels.append(channel)
        return channel

    def addTrack(self, track):
        self.tracks.append(track)

    def addTransceiver(self, kind, direction="sendrecv"):
        self.transceivers.append((kind, direction))

    async def createOffer(self):
        return RTCSessionDescription(sdp=OFFER_SDP, type="offer")

    async def setLocalDescription(self, description):
        self.localDescription = description

    async def setRemoteDescription(self, description):
        self.remoteDescription = description
        if self.open_channels_on_answer:
            for channel in self.channels:
                channel.open()

    def set_connection_state(self, state):
        self.connectionState = state
        self.emit("connectionstatechange")

    def set_ice_state(self, state):
        self.iceConnectionState = state
        self.emit("iceconnectionstatechange")

    async def close(self):
        if self.closed:
            return
        self.closed = True
        for channel in self.channels:
            channel.close()
        self.set_connection_state("closed")


class FakeInboundTrack:
    """Remote aiortc track that yields the given frames and then ends"""

    def __init__(self, frames, kind="audio"):
        self.kind = kind
        self._frames = list(frames)

    async def recv(self):
        if not self._frames:
            raise MediaStreamError
        return self._frames.pop(0)


class FakeAudioDevice:
    """Stand-in for PyAudioDevice that records what it was asked to do"""

    def __init__(self, sample_rate=SAMPLE_RATE, channels=1, frames_per_buffer=FRAME_SAMPLES):
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_buffer = frames_per_buffer
        self.input_open = False
        self.output_open = False
        self.open_input_calls = 0
        self.reads = 0
        self.fail_reads = False
        self.fail_open_input = False
        self.write_failures = 0
        self.write_attempts = 0
        self.write_delay = 0.0
        self.writes = []
        self.terminated = False

    @property
    def block(self):
        return b"\x01\x00" * self.frames_per_buffer * self.channels

    def open_input(self):
        self.open_input_calls += 1
        if self.fail_open_input:
            raise OSError("Invalid input device")
        self.input_open = True

    def read(self):
        if self.fail_reads:
            raise OSError("Input overflowed")
        self.reads += 1
        return self.block

    def close_input(self):
        self.input_open = False

    def open_output(self):
        self.output_open = True

    def write(self, pcm):
        self.write_attempts += 1
        if self.write_delay:
            time.sleep(self.write_delay)
        if self.write_failures > 0:
            self.write_failures -= 1
            raise OSError("Output underflowed")
        self.writes.append(pcm)

    def close_output(self):
        self.output_open = False

    def terminate(self):
        self.terminated = True
        self.input_open = False
        self.output_open = False


async def wait_until(predicate, timeout=2.0, interval=0.01):
    """Poll until predicate() is true or fail the test"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Timed out waiting for condition")
        await asyncio.sleep(interval)


def make_response(status_code=200, text="", json_data=None):
    """Build a mock requests.Response"""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def settings():
    return Settings(api_key="test-api-key", instructions="Say hello")


@pytest.fixture
def fake_device():
    return FakeAudioDevice()


@pytest.fixture
def fake_pc():
    return FakePeerConnection()


@pytest.fixture
def mock_broker():
    broker = AsyncMock(spec=CredentialBroker)
    broker.acquire_credential.return_value = Credential(value="ek_test")
    return broker


@pytest.fixture
def mock_signaling():
    """Patch the SDP POST so it returns a valid answer"""
    with patch("plushpal.services.signaling.requests.post") as mock_post:
        mock_post.return_value = make_response(201, text=ANSWER_SDP)
        yield mock_post
