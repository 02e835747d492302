"""
Data structures for the PlushPal realtime client.

- events: control-channel message schemas and their JSON codec
- session: credentials, session descriptions and conversation states
"""

from plushpal.models.events import (
    AudioChunkEvent,
    AudioPayload,
    ErrorEvent,
    EventMessage,
    ResponseCreateEvent,
    ResponseOptions,
    ResponseStopEvent,
    decode_event,
    encode_event,
)
from plushpal.models.session import (
    ConversationState,
    Credential,
    OfferCapabilities,
    SessionDescription,
)

__all__ = [
    "AudioChunkEvent",
    "AudioPayload",
    "ConversationState",
    "Credential",
    "ErrorEvent",
    "EventMessage",
    "OfferCapabilities",
    "ResponseCreateEvent",
    "ResponseOptions",
    "ResponseStopEvent",
    "SessionDescription",
    "decode_event",
    "encode_event",
]
