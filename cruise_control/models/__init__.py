"""
Data models for the cruise-control call agent.

Key components:
- call_session: call states, agent modes, the per-call session, volume samples and the
  recording artifact produced at call end.
- live_schemas: Pydantic models for the Gemini Live WebSocket messages.
- api_schemas: Pydantic request bodies for the HTTP presentation boundary.

Usage examples:
```python
from cruise_control.models import AgentMode, CallState
from cruise_control.models.live_schemas import SetupMessage

setup = SetupMessage.build("gemini-2.5-flash-native-audio-preview-09-2025", "Be polite.")
await websocket.send(setup.model_dump_json(exclude_none=True))
```
"""

from cruise_control.models.call_session import (
    AgentMode,
    CallSession,
    CallState,
    RecordingArtifact,
    VolumeSample,
    recording_filename,
)
from cruise_control.models.live_schemas import (
    RealtimeInputMessage,
    ServerContent,
    ServerMessage,
    SetupMessage,
)
