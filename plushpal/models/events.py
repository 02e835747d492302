"""
Pydantic models for the Realtime API control-channel messages.

Every message is a JSON object with a "type" discriminator. Outbound directives
(response.create, response.stop) and the inbound types the client acts on
(audio.chunk, error) have dedicated models; any other inbound type is kept as a
generic EventMessage with its extra fields preserved.
"""

import base64
import binascii
import json
import logging
from typing import Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field

from plushpal.config.constants import (
    LOGGER_NAME,
    MESSAGE_TYPE_AUDIO_CHUNK,
    MESSAGE_TYPE_ERROR,
    MESSAGE_TYPE_RESPONSE_CREATE,
    MESSAGE_TYPE_RESPONSE_STOP,
)

logger = logging.getLogger(LOGGER_NAME)


class EventMessage(BaseModel):
    """Base model for control-channel messages."""
    model_config = ConfigDict(extra="allow")

    type: str = Field(..., description="Message type identifier")


class ResponseOptions(BaseModel):
    """Options carried by a response.create directive."""
    modalities: List[str]
    instructions: str


class ResponseCreateEvent(EventMessage):
    """Directive asking the model to start responding."""
    type: Literal["response.create"] = MESSAGE_TYPE_RESPONSE_CREATE
    response: ResponseOptions


class ResponseStopEvent(EventMessage):
    """Directive asking the model to stop the current response."""
    type: Literal["response.stop"] = MESSAGE_TYPE_RESPONSE_STOP


class AudioPayload(BaseModel):
    """Base64 audio plus optional timing and format metadata."""
    data: str
    timestamp: Optional[float] = None
    sample_rate: Optional[int] = None
    channels: Optional[int] = None

    def decode(self) -> bytes:
        """
        Decode the base64 payload.

        Raises:
            ValueError: If the payload is not valid base64
        """
        try:
            return base64.b64decode(self.data, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 audio payload: {e}") from e


class AudioChunkEvent(EventMessage):
    """Inbound audio carried over the control channel."""
    type: Literal["audio.chunk"] = MESSAGE_TYPE_AUDIO_CHUNK
    audio: AudioPayload


class ErrorEvent(EventMessage):
    """Error notification from the Realtime API."""
    type: Literal["error"] = MESSAGE_TYPE_ERROR
    error: Dict[str, Any] = Field(default_factory=dict)


EVENT_MODELS: Dict[str, Type[EventMessage]] = {
    MESSAGE_TYPE_RESPONSE_CREATE: ResponseCreateEvent,
    MESSAGE_TYPE_RESPONSE_STOP: ResponseStopEvent,
    MESSAGE_TYPE_AUDIO_CHUNK: AudioChunkEvent,
    MESSAGE_TYPE_ERROR: ErrorEvent,
}


def encode_event(message: EventMessage) -> str:
    """Serialize a message to the JSON text sent over the data channel."""
    return message.model_dump_json(exclude_none=True)


def decode_event(raw: Union[str, bytes]) -> EventMessage:
    """
    Parse JSON text from the data channel into the matching message model.

    Args:
        raw: Text or UTF-8 bytes received on the channel

    Returns:
        EventMessage: A typed model for recognized types, otherwise a generic EventMessage

    Raises:
        ValueError: If the payload is not a JSON object with a string "type",
            or a recognized type fails validation
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")

    data = json.loads(raw)
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ValueError("Event message must be a JSON object with a string 'type'")

    model = EVENT_MODELS.get(data["type"])
    if model is None:
        logger.debug(f"Unrecognized event type: {data['type']}")
        model = EventMessage
    return model.model_validate(data)
