"""
Streaming session management for the cruise-control agent.

``StreamingSessionManager`` owns at most one ``StreamingConnection`` to the Gemini Live
API at a time. It turns the wire client's push-style events into subscriptions the call
controller can use: decoded inbound audio, the out-of-band user alert, interruptions and
unexpected connection loss. Closing or replacing a connection never touches the audio
pipeline.
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, List, Optional, Union

import numpy as np

from cruise_control.audio.codec import decode, duration_seconds
from cruise_control.bot.directives import build_directive
from cruise_control.bot.live_client import WS_MAX_QUEUE, LiveAudioClient
from cruise_control.config.constants import (
    ALERT_PHRASE,
    DEFAULT_LIVE_MODEL,
    DEFAULT_VOICE,
    LOGGER_NAME,
    PLAYBACK_SAMPLE_RATE,
)
from cruise_control.errors import DecodeError
from cruise_control.models.call_session import AgentMode

logger = logging.getLogger(LOGGER_NAME)

_NON_LETTERS = re.compile(r"[^a-z]+")

AudioHandler = Callable[[np.ndarray, float], None]
SignalHandler = Callable[[], None]


@dataclass
class StreamingConnection:
    """The live link to the remote agent while cruise control is engaged."""
    directive: str
    mode: AgentMode
    goal: str
    client: LiveAudioClient
    outbound: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=WS_MAX_QUEUE))
    sender_task: Optional[asyncio.Task] = None
    transcript: str = ""
    alerted: bool = False

    @property
    def is_open(self) -> bool:
        return self.client.is_open


def _normalize(text: str) -> str:
    return " ".join(_NON_LETTERS.sub(" ", text.lower()).split())


class StreamingSessionManager:
    """
    Manages one connection at a time to the remote conversational-audio agent.

    Args:
        api_key: Gemini API key, defaults to ``GOOGLE_API_KEY`` or ``GEMINI_API_KEY``
        model: Live model name, defaults to ``LIVE_MODEL`` or the built-in default
        voice: Prebuilt voice name, defaults to ``LIVE_VOICE`` or "Kore"
        client_factory: Builds the wire client; replaced in tests
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None,
                 voice: Optional[str] = None,
                 client_factory: Callable[..., LiveAudioClient] = LiveAudioClient,
                 playback_rate: int = PLAYBACK_SAMPLE_RATE):
        self.api_key = api_key if api_key is not None else (
            os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
        )
        self.model = model or os.getenv("LIVE_MODEL", DEFAULT_LIVE_MODEL)
        self.voice = voice or os.getenv("LIVE_VOICE", DEFAULT_VOICE)
        self.playback_rate = playback_rate
        self.connection: Optional[StreamingConnection] = None

        self._client_factory = client_factory
        self._lock = asyncio.Lock()
        self._audio_handlers: List[AudioHandler] = []
        self._alert_handlers: List[SignalHandler] = []
        self._interrupted_handlers: List[SignalHandler] = []
        self._closed_handlers: List[SignalHandler] = []

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and self.connection.is_open

    def on_inbound_audio(self, handler: AudioHandler) -> None:
        """Subscribe to decoded agent audio: ``handler(samples, duration_seconds)``."""
        self._audio_handlers.append(handler)

    def on_alert(self, handler: SignalHandler) -> None:
        """Subscribe to the agent's request for the user to take back the call."""
        self._alert_handlers.append(handler)

    def on_interrupted(self, handler: SignalHandler) -> None:
        self._interrupted_handlers.append(handler)

    def on_closed(self, handler: SignalHandler) -> None:
        """Subscribe to connection loss that was not caused by ``disconnect()``."""
        self._closed_handlers.append(handler)

    async def connect(self, mode: Union[AgentMode, str], goal: str = "") -> StreamingConnection:
        """
        Replace any current connection with a new one configured for ``mode`` and ``goal``.

        Raises:
            ConnectionFailed: if the remote rejects the handshake; no connection remains open
        """
        mode = AgentMode(mode)
        goal = goal or ""
        async with self._lock:
            await self._close_connection()

            directive = build_directive(mode, goal)
            client = self._client_factory(self.api_key, self.model, self.voice)
            connection = StreamingConnection(directive=directive, mode=mode, goal=goal, client=client)
            client.set_handlers(
                audio=partial(self._handle_audio, connection),
                text=partial(self._handle_text, connection),
                turn_complete=partial(self._handle_turn_complete, connection),
                interrupted=partial(self._handle_interrupted, connection),
                closed=partial(self._handle_closed, connection),
            )

            logger.info(f"Engaging agent in {mode.value} mode")
            await client.connect(directive)

            connection.sender_task = asyncio.create_task(self._sender_loop(connection))
            self.connection = connection
            return connection

    def send(self, encoded_frame: str) -> None:
        """Queue one base64 frame for the open connection; dropped when disengaged."""
        connection = self.connection
        if connection is None or not connection.is_open:
            return
        try:
            connection.outbound.put_nowait(encoded_frame)
        except asyncio.QueueFull:
            logger.debug("Outbound audio queue full, dropping frame")

    async def disconnect(self) -> None:
        """Close the current connection if any. Idempotent."""
        async with self._lock:
            await self._close_connection()

    async def _close_connection(self) -> None:
        connection, self.connection = self.connection, None
        if connection is None:
            return

        if connection.sender_task is not None and not connection.sender_task.done():
            connection.sender_task.cancel()
            try:
                await connection.sender_task
            except asyncio.CancelledError:
                logger.debug("Sender task cancelled")
        await connection.client.close()
        logger.info(f"Agent connection closed ({connection.mode.value} mode)")

    async def _sender_loop(self, connection: StreamingConnection) -> None:
        while True:
            frame = await connection.outbound.get()
            try:
                await connection.client.send_audio(frame)
            except Exception as e:
                logger.error(f"Error sending audio frame to agent: {e}", exc_info=True)

    async def _handle_audio(self, connection: StreamingConnection, payload: str) -> None:
        if connection is not self.connection:
            logger.debug("Ignoring audio from a connection that is no longer current")
            return
        try:
            samples = decode(payload)
        except DecodeError as e:
            logger.warning(f"Dropping inbound audio segment: {e}")
            return
        if samples.size == 0:
            return

        duration = duration_seconds(samples.size, self.playback_rate)
        for handler in self._audio_handlers:
            handler(samples, duration)

    async def _handle_text(self, connection: StreamingConnection, text: str) -> None:
        if connection is not self.connection or connection.alerted:
            return
        connection.transcript += text
        if ALERT_PHRASE in _normalize(connection.transcript):
            connection.alerted = True
            logger.info("Agent raised a user alert")
            for handler in self._alert_handlers:
                handler()

    async def _handle_turn_complete(self, connection: StreamingConnection) -> None:
        connection.transcript = ""

    async def _handle_interrupted(self, connection: StreamingConnection) -> None:
        if connection is not self.connection:
            return
        for handler in self._interrupted_handlers:
            handler()

    async def _handle_closed(self, connection: StreamingConnection) -> None:
        if connection is not self.connection:
            return
        logger.warning("Agent connection closed by the remote side")
        await self.disconnect()
        for handler in self._closed_handlers:
            handler()
