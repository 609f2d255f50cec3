"""
Call controller for cruise-control calls.

The controller is the only object outside code talks to. It runs the call state machine

    IDLE -> CONNECTING -> ACTIVE -> CONNECTING -> AGENT_ENGAGED <-> ALERT

and owns the per-call resources: the ``CallSession`` with its audio pipeline, and (via
the session manager) the streaming connection to the agent. User intents are
serialized with an asyncio lock so every CONNECTING transition resolves, either forward
or back, before the next intent runs.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from cruise_control.audio.pipeline import AudioPipeline
from cruise_control.bot.session_manager import StreamingSessionManager
from cruise_control.config.constants import LOGGER_NAME
from cruise_control.errors import ConnectionFailed, DeviceUnavailable, RecorderFlushError
from cruise_control.models.call_session import (
    ENGAGED_STATES,
    SILENT,
    AgentMode,
    CallSession,
    CallState,
    RecordingArtifact,
    VolumeSample,
    recording_filename,
)

logger = logging.getLogger(LOGGER_NAME)

StateListener = Callable[[CallState, CallState], None]

DEFAULT_MODE = AgentMode.CASUAL


class CallController:
    """
    State machine for one call at a time; reusable across calls.

    Args:
        session_manager: Connection manager for the remote agent
        pipeline_factory: Builds the ``AudioPipeline`` for each call
        recordings_dir: Where finalized recordings are written; None keeps them in memory only
    """

    def __init__(self, session_manager: Optional[StreamingSessionManager] = None,
                 pipeline_factory: Callable[..., AudioPipeline] = AudioPipeline,
                 recordings_dir: Optional[Union[str, Path]] = None):
        self.session_manager = session_manager or StreamingSessionManager()
        self.recordings_dir = Path(recordings_dir) if recordings_dir else None
        self.last_recording: Optional[RecordingArtifact] = None
        self.last_error: Optional[str] = None

        self._pipeline_factory = pipeline_factory
        self._session: Optional[CallSession] = None
        self._state = CallState.IDLE
        self._target = ""
        self._mode = DEFAULT_MODE
        self._goal = ""
        self._volume = SILENT
        self._lock = asyncio.Lock()
        self._listeners: List[StateListener] = []

        self.session_manager.on_inbound_audio(self._handle_inbound_audio)
        self.session_manager.on_alert(self._handle_alert)
        self.session_manager.on_interrupted(self._handle_interrupted)
        self.session_manager.on_closed(self._handle_remote_closed)

    # Presentation-facing state

    @property
    def state(self) -> CallState:
        return self._state

    @property
    def target(self) -> str:
        return self._target

    @property
    def mode(self) -> AgentMode:
        return self._mode

    @property
    def goal(self) -> str:
        return self._goal

    @property
    def volume(self) -> VolumeSample:
        return self._volume

    @property
    def session(self) -> Optional[CallSession]:
        return self._session

    @property
    def pipeline(self) -> Optional[AudioPipeline]:
        return self._session.pipeline if self._session else None

    def add_listener(self, listener: StateListener) -> None:
        """Register ``listener(old_state, new_state)`` for every transition."""
        self._listeners.append(listener)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "target": self._target,
            "mode": self._mode.value,
            "goal": self._goal,
            "volume": self._volume.to_dict(),
            "agent_connected": self.session_manager.is_connected,
            "last_recording": self.last_recording.filename if self.last_recording else None,
            "last_error": self.last_error,
        }

    # Configuration

    def set_target(self, target: str) -> bool:
        """Set who is being called; only possible between calls."""
        if self._state != CallState.IDLE:
            logger.warning("Cannot change the call target during a call")
            return False
        self._target = (target or "").strip()
        return True

    def set_mode(self, mode: Union[AgentMode, str]) -> None:
        """Set the agent mode used by the next ``engage``."""
        self._mode = AgentMode(mode)

    def set_goal(self, goal: str) -> None:
        """Set the objective appended to the directive on the next ``engage``."""
        self._goal = goal or ""

    # Intents

    async def start_call(self, target: Optional[str] = None) -> bool:
        """
        Start a call: acquire the microphone and begin recording.

        Returns:
            bool: False if the call was rejected (blank target or a call already running)

        Raises:
            DeviceUnavailable: the microphone could not be acquired; the controller is
                back in IDLE with no pipeline allocated
        """
        async with self._lock:
            if self._state != CallState.IDLE:
                logger.warning(f"Cannot start a call while {self._state.value}")
                return False
            candidate = (self._target if target is None else target or "").strip()
            if not candidate:
                logger.warning("Call rejected: no target given")
                return False

            self._target = candidate
            self.last_error = None
            self._session = CallSession(target=candidate, mode=self._mode, goal=self._goal)
            self._set_state(CallState.CONNECTING)

            pipeline = self._pipeline_factory(on_volume=self._handle_volume)
            try:
                pipeline.start()
            except DeviceUnavailable as e:
                logger.error(f"Call to {candidate} aborted: {e.detail}")
                self.last_error = e.detail
                self._session = None
                self._volume = SILENT
                self._set_state(CallState.IDLE)
                raise

            self._session.pipeline = pipeline
            logger.info(f"Call to {candidate} started")
            self._set_state(CallState.ACTIVE)
            return True

    async def engage(self, mode: Optional[Union[AgentMode, str]] = None,
                     goal: Optional[str] = None) -> bool:
        """
        Hand the call to the agent (cruise control on).

        Engaging while already engaged replaces the connection with one using the new
        mode and goal.

        Returns:
            bool: False if there is no call to engage on

        Raises:
            ConnectionFailed: the agent could not be reached; the call stays ACTIVE
        """
        async with self._lock:
            if self._state not in (CallState.ACTIVE,) + ENGAGED_STATES:
                logger.warning(f"Cannot engage the agent while {self._state.value}")
                return False
            if mode is not None:
                self.set_mode(mode)
            if goal is not None:
                self.set_goal(goal)

            session = self._session
            session.mode, session.goal = self._mode, self._goal
            session.pipeline.detach_sink()
            self._set_state(CallState.CONNECTING)

            try:
                await self.session_manager.connect(self._mode, self._goal)
            except ConnectionFailed as e:
                logger.error(f"Agent engagement failed: {e.detail}")
                self.last_error = e.detail
                self._set_state(CallState.ACTIVE)
                raise
            except asyncio.CancelledError:
                self._set_state(CallState.ACTIVE)
                raise

            session.pipeline.attach_sink(self.session_manager.send)
            self.last_error = None
            self._set_state(CallState.AGENT_ENGAGED)
            return True

    async def disengage(self) -> bool:
        """Take the call back from the agent; the call itself continues."""
        async with self._lock:
            if self._state not in ENGAGED_STATES:
                logger.warning(f"Cannot disengage while {self._state.value}")
                return False
            self._session.pipeline.detach_sink()
            await self.session_manager.disconnect()
            self._set_state(CallState.ACTIVE)
            return True

    async def end_call(self) -> Optional[RecordingArtifact]:
        """
        Hang up from any non-idle state.

        Disconnects the agent, stops the pipeline, builds the recording artifact and
        resets per-call configuration. Never raises.

        Returns:
            RecordingArtifact: the call recording, or None if none could be produced
        """
        async with self._lock:
            if self._state == CallState.IDLE:
                logger.warning("No call to end")
                return None

            session = self._session
            artifact = None
            try:
                pipeline = session.pipeline if session else None
                if pipeline is not None:
                    pipeline.detach_sink()
                try:
                    await self.session_manager.disconnect()
                except Exception as e:
                    logger.error(f"Error disconnecting agent at call end: {e}", exc_info=True)

                data = None
                if pipeline is not None:
                    try:
                        data = pipeline.stop()
                    except RecorderFlushError as e:
                        logger.error(f"Recording lost: {e}")
                        self.last_error = RecorderFlushError.default_detail
                    except Exception as e:
                        logger.error(f"Error stopping audio pipeline: {e}", exc_info=True)
                        self.last_error = RecorderFlushError.default_detail

                if data:
                    artifact = self._build_artifact(session.target, data)
                    session.recording = artifact
                elif self.last_error is None:
                    self.last_error = "No recording available for this call."
            finally:
                if session is not None:
                    session.pipeline = None
                self._session = None
                self.last_recording = artifact
                self._target = ""
                self._goal = ""
                self._mode = DEFAULT_MODE
                self._volume = SILENT
                self._set_state(CallState.IDLE)

            logger.info("Call ended")
            return artifact

    # Internals

    def _set_state(self, new_state: CallState) -> None:
        old_state = self._state
        self._state = new_state
        if self._session is not None:
            self._session.state = new_state
        if old_state == new_state:
            return
        logger.info(f"Call state: {old_state.value} -> {new_state.value}")
        for listener in self._listeners:
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    def _build_artifact(self, target: str, data: bytes) -> RecordingArtifact:
        artifact = RecordingArtifact(filename=recording_filename(target), data=data)
        if self.recordings_dir is not None:
            path = self.recordings_dir / artifact.filename
            try:
                self.recordings_dir.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
                artifact.path = path
                logger.info(f"Recording saved to {path}")
            except OSError as e:
                logger.warning(f"Could not save recording to {path}: {e}")
        return artifact

    def _handle_volume(self, sample: VolumeSample) -> None:
        # runs on the capture thread
        self._volume = sample

    def _handle_inbound_audio(self, samples, duration: float) -> None:
        pipeline = self.pipeline
        if pipeline is None or self._state not in ENGAGED_STATES:
            logger.debug("Dropping agent audio: agent not engaged")
            return
        pipeline.playback(samples, duration)

    def _handle_alert(self) -> None:
        if self._state == CallState.AGENT_ENGAGED:
            self._set_state(CallState.ALERT)

    def _handle_interrupted(self) -> None:
        pipeline = self.pipeline
        if pipeline is not None:
            pipeline.clear_playback()

    def _handle_remote_closed(self) -> None:
        if self._state not in ENGAGED_STATES:
            return
        pipeline = self.pipeline
        if pipeline is not None:
            pipeline.detach_sink()
        self.last_error = "The agent ended its session."
        self._set_state(CallState.ACTIVE)
