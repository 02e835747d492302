"""
Error taxonomy for the PlushPal realtime client.

Errors raised by third-party transports (requests, aiortc, PyAudio) are
wrapped into these types at the component boundary so callers only need to
handle PlushPalError subclasses.
"""

from typing import Optional


class PlushPalError(Exception):
    """Base class for all application errors."""


class ConfigurationError(PlushPalError, ValueError):
    """Required configuration is missing or invalid."""


class AuthError(PlushPalError):
    """The credential request failed or returned a malformed body.

    Attributes:
        status: HTTP status code, or None when no response was received
        body: Raw response body as returned by the credential endpoint
    """

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class NegotiationError(PlushPalError):
    """The SDP exchange failed, returned a bad status or a malformed answer."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body


class SequencingError(PlushPalError, RuntimeError):
    """A negotiation step was called out of order or more than once."""


class ConversationStateError(PlushPalError, RuntimeError):
    """A controller operation was invoked in a state that does not allow it."""


class ChannelNotReady(PlushPalError):
    """A message was sent before the control channel reached the open state."""


class DeviceError(PlushPalError):
    """Audio capture or render I/O failed.

    Capture failures are fatal to the conversation; render failures are not.
    """

    def __init__(self, message: str, fatal: bool = False):
        super().__init__(message)
        self.fatal = fatal
