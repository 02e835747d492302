"""
PlushPal - Headless OpenAI Realtime API voice client

PlushPal holds a spoken conversation between a local microphone/speaker (for
example a Raspberry Pi with a WM8960 sound card) and OpenAI's Realtime API.
Media travels over a WebRTC peer connection; conversation control travels as
JSON events over the "oai-events" data channel.

Architecture Overview:
- An ephemeral credential is obtained from the sessions endpoint using the
  long-lived OPENAI_API_KEY
- A local SDP offer is exchanged for the remote answer over HTTP
- The controller starts and stops microphone capture in step with the
  conversation and plays back the model's audio as it arrives

Key Components:
- bot: Conversation controller, control channel, audio pipeline and connection monitor
- config: Constants, logging setup and environment-based settings
- models: Control-channel message schemas and session data structures
- services: Credential and SDP signaling clients for the Realtime API
- diagnostics: Microphone record-and-playback self-test
- health: Optional HTTP health endpoint

Getting Started:
1. Set up environment variables (or a .env file):
   - OPENAI_API_KEY: Your OpenAI API key
   - PLUSHPAL_INPUT_DEVICE / PLUSHPAL_OUTPUT_DEVICE: PyAudio device indexes (optional)
   - LOG_LEVEL: Logging level (default INFO)

2. Start the client:
   ```bash
   python -m plushpal
   ```

3. Press Enter to start a conversation and Enter again to stop it.
"""

__version__ = "0.3.0"
