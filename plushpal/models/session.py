"""
Session-level data structures for negotiating a Realtime API connection.

These models cover the ephemeral credential returned by the session endpoint,
the immutable offer/answer session descriptions exchanged during signaling,
and the conversation lifecycle states driven by the controller.
"""

import time
from enum import Enum
from typing import Literal, Optional

from aiortc import RTCSessionDescription
from pydantic import BaseModel, ConfigDict, SecretStr


class ConversationState(str, Enum):
    """Lifecycle state of the conversation controller."""
    IDLE = "idle"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    TERMINATING = "terminating"


class ClientSecret(BaseModel):
    """Ephemeral secret nested in the session creation response."""
    value: str
    expires_at: Optional[int] = None


class RealtimeSessionResponse(BaseModel):
    """Response from session creation endpoint."""
    id: Optional[str] = None
    client_secret: ClientSecret


class Credential(BaseModel):
    """Short-lived bearer token scoped to establishing a single session."""
    model_config = ConfigDict(frozen=True)

    value: SecretStr
    expires_at: Optional[int] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (time.time() if now is None else now) >= self.expires_at

    def bearer(self) -> str:
        return f"Bearer {self.value.get_secret_value()}"


class SessionDescription(BaseModel):
    """An SDP offer or answer. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    type: Literal["offer", "answer"]
    sdp: str

    @classmethod
    def from_rtc(cls, description: RTCSessionDescription) -> "SessionDescription":
        return cls(type=description.type, sdp=description.sdp)

    def to_rtc(self) -> RTCSessionDescription:
        return RTCSessionDescription(sdp=self.sdp, type=self.type)


class OfferCapabilities(BaseModel):
    """Media capabilities declared by the local offer."""
    model_config = ConfigDict(frozen=True)

    audio_direction: Literal["sendrecv", "recvonly"] = "sendrecv"
