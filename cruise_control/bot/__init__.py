"""
Bot module for handing a live call to a Gemini Live agent.

Key components:
- LiveAudioClient: WebSocket client for the Gemini Live API; performs the setup handshake,
  streams microphone audio and dispatches agent audio, transcripts and turn events.
- StreamingSessionManager: keeps at most one connection open, builds the directive for the
  selected mode and goal, decodes agent audio and raises the user alert.
- directives: the fixed instruction text for each agent mode.

Usage examples:
```python
from cruise_control.bot import StreamingSessionManager
from cruise_control.models import AgentMode

manager = StreamingSessionManager()
manager.on_inbound_audio(lambda samples, duration: pipeline.playback(samples, duration))
await manager.connect(AgentMode.NEGOTIATE, "waive late fee")
manager.send(encoded_frame)
await manager.disconnect()
```
"""

from cruise_control.bot.directives import build_directive
from cruise_control.bot.live_client import LiveAudioClient
from cruise_control.bot.session_manager import StreamingConnection, StreamingSessionManager

__all__ = ["LiveAudioClient", "StreamingConnection", "StreamingSessionManager", "build_directive"]
