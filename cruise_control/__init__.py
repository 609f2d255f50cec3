"""
Cruise Control - hand a live phone call to a Gemini Live agent

A human starts a call, then hands the live conversation to an AI agent that streams
audio to and from Gemini Live, while the whole conversation is recorded.

Architecture Overview:
- Audio pipeline capturing the microphone, playing the agent back and recording both legs
- Streaming session manager holding at most one Gemini Live connection
- Call controller running the call/agent state machine
- FastAPI app exposing the controller to a presentation layer

Key Components:
- audio: PCM16 codec, volume meter, PyAudio devices, recorder and pipeline
- bot: Gemini Live client, directives and the streaming session manager
- config: constants and logging setup
- models: call state, wire schemas and HTTP request bodies
- controller: the call state machine
- main: HTTP and WebSocket presentation boundary

Getting Started:
1. Set up environment variables:
   - GOOGLE_API_KEY: Your Gemini API key
   - RECORDINGS_DIR: Where call recordings are saved (default recordings)
   - LOG_LEVEL: Logging level (default INFO)

2. Start the server:
   ```bash
   python run.py
   ```
"""

__version__ = "1.0.0"
