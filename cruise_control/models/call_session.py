"""
Call state model for a single cruise-control call.

This module provides the enums and dataclasses shared by the controller, the audio
pipeline and the presentation boundary: the call state machine states, the agent
modes, the (user, agent) volume pair and the recording artifact produced at call end.
"""

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from cruise_control.config.constants import (
    RECORDING_EXTENSION,
    RECORDING_MIME_TYPE,
    RECORDING_PREFIX,
)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._+-]+")


class CallState(str, Enum):
    """States of the call controller."""
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    AGENT_ENGAGED = "AGENT_ENGAGED"  # cruise control on
    ALERT = "ALERT"  # agent is summoning the user


class AgentMode(str, Enum):
    """Behaviour the remote agent is instructed to follow."""
    MONITOR = "MONITOR"  # wait on hold, flag a human
    CASUAL = "CASUAL"
    NEGOTIATE = "NEGOTIATE"
    FILIBUSTER = "FILIBUSTER"


ENGAGED_STATES = (CallState.AGENT_ENGAGED, CallState.ALERT)


@dataclass(frozen=True)
class VolumeSample:
    """Most recent (user, agent) loudness pair, each in [0, 100]."""
    user: float = 0.0
    agent: float = 0.0

    def to_dict(self):
        return {"user": self.user, "agent": self.agent}


SILENT = VolumeSample()


@dataclass
class RecordingArtifact:
    """The finalized, downloadable audio for a whole call."""
    filename: str
    data: bytes
    mime_type: str = RECORDING_MIME_TYPE
    path: Optional[Path] = None

    @property
    def size(self) -> int:
        return len(self.data)


def recording_filename(target: str, timestamp: Optional[datetime] = None) -> str:
    """
    Build the artifact name from the call target and an ISO-8601 timestamp.

    Characters that are unsafe in file names are replaced with underscores so the
    name can be used both as a download name and as a path under the recordings dir.

    Args:
        target: Free-text call target (name or number)
        timestamp: Time of the call end, defaults to now (UTC)

    Returns:
        str: e.g. ``cruise-control-Kevin-2026-10-19T12:00:00.000Z.wav``
    """
    timestamp = timestamp or datetime.now(UTC)
    iso = timestamp.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    safe_target = _UNSAFE_FILENAME_CHARS.sub("_", target.strip()) or "unknown"
    return f"{RECORDING_PREFIX}-{safe_target}-{iso}.{RECORDING_EXTENSION}"


@dataclass
class CallSession:
    """
    One outgoing call attempt, owned by the call controller.

    The audio pipeline handle lives here so it is released with the session; the
    streaming connection is owned by the session manager and only exists while the
    agent is engaged.
    """
    target: str
    mode: AgentMode = AgentMode.CASUAL
    goal: str = ""
    state: CallState = CallState.CONNECTING
    pipeline: Optional[object] = None
    recording: Optional[RecordingArtifact] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
