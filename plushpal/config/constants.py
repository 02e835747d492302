"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for protocol endpoints, audio parameters and
control-channel message types.
"""

# Logger name used throughout the application
LOGGER_NAME = "plushpal"

# Default OpenAI model and voice for the Realtime API
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-12-17"
DEFAULT_VOICE = "verse"
DEFAULT_INSTRUCTIONS = "Hello, how can I help you today?"
DEFAULT_MODALITIES = ["text", "audio"]

# Realtime API endpoints
REALTIME_SESSIONS_URL = "https://api.openai.com/v1/realtime/sessions"
REALTIME_URL = "https://api.openai.com/v1/realtime"
SDP_CONTENT_TYPE = "application/sdp"

# Label of the control data channel expected by the Realtime API
DATA_CHANNEL_LABEL = "oai-events"

# Audio format constants (16-bit signed PCM)
SAMPLE_RATE = 48000
CHANNELS = 1
SAMPLE_WIDTH = 2
FRAME_SAMPLES = 960  # 20ms at 48kHz

# Queue sizes for the controller mailbox and the render path
MAILBOX_SIZE = 256
RENDER_QUEUE_SIZE = 32

# Control-channel message type constants
MESSAGE_TYPE_RESPONSE_CREATE = "response.create"
MESSAGE_TYPE_RESPONSE_STOP = "response.stop"
MESSAGE_TYPE_AUDIO_CHUNK = "audio.chunk"
MESSAGE_TYPE_ERROR = "error"
