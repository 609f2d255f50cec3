import asyncio
import json
import logging
import time
import traceback
from typing import Awaitable, Callable, Optional

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, ConnectionClosedOK

from cruise_control.config.constants import (
    DEFAULT_LIVE_MODEL,
    DEFAULT_VOICE,
    LIVE_ENDPOINT,
    LOGGER_NAME,
)
from cruise_control.errors import ConnectionFailed
from cruise_control.models.live_schemas import (
    RealtimeInputMessage,
    ServerMessage,
    SetupMessage,
)

logger = logging.getLogger(LOGGER_NAME)

CONNECTION_TIMEOUT = 10  # seconds
SETUP_TIMEOUT = 5  # seconds to wait for setupComplete
SEND_TIMEOUT = 2.0  # seconds

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_MAX_QUEUE = 32
WS_PING_INTERVAL = 5

PayloadHandler = Callable[[str], Awaitable[None]]
EventHandler = Callable[[], Awaitable[None]]


class LiveAudioClient:
    """
    Client for one Gemini Live session over WebSocket, streaming audio both ways.

    The client performs the ``setup`` handshake, forwards realtime audio input and
    dispatches server messages to the registered async handlers. It never reconnects:
    a lost connection is reported through the ``closed`` handler.
    """
    def __init__(self, api_key: str, model: str = DEFAULT_LIVE_MODEL,
                 voice: str = DEFAULT_VOICE, endpoint: str = LIVE_ENDPOINT):
        self.api_key = api_key
        self.model = model
        self.voice = voice
        self.endpoint = endpoint
        self.ws = None
        self._recv_task: Optional[asyncio.Task] = None
        self._connection_active = False
        self._is_closing = False

        self._audio_handler: Optional[PayloadHandler] = None
        self._text_handler: Optional[PayloadHandler] = None
        self._turn_complete_handler: Optional[EventHandler] = None
        self._interrupted_handler: Optional[EventHandler] = None
        self._closed_handler: Optional[EventHandler] = None
        logger.info(f"LiveAudioClient initialized with model: {model}, voice: {voice}")

    @property
    def is_open(self) -> bool:
        return self._connection_active and not self._is_closing

    def set_handlers(self,
                     audio: Optional[PayloadHandler] = None,
                     text: Optional[PayloadHandler] = None,
                     turn_complete: Optional[EventHandler] = None,
                     interrupted: Optional[EventHandler] = None,
                     closed: Optional[EventHandler] = None) -> None:
        """
        Register the handlers for server events.

        Args:
            audio: Receives each base64 PCM16 audio segment
            text: Receives each fragment of the agent's transcribed speech
            turn_complete: Called when the agent finishes a turn
            interrupted: Called when the server reports the agent was interrupted
            closed: Called when the connection drops without ``close()`` being called
        """
        self._audio_handler = audio
        self._text_handler = text
        self._turn_complete_handler = turn_complete
        self._interrupted_handler = interrupted
        self._closed_handler = closed

    async def connect(self, directive: str) -> None:
        """
        Open the WebSocket, send the setup message and wait for ``setupComplete``.

        Args:
            directive: System instruction for the agent

        Raises:
            ConnectionFailed: if the key is missing, the socket cannot be opened or the
                handshake is rejected or times out
        """
        if not self.api_key:
            logger.error("GOOGLE_API_KEY environment variable not set")
            raise ConnectionFailed("No API key configured for the Gemini Live API.")

        url = f"{self.endpoint}?key={self.api_key}"
        self._is_closing = False
        try:
            logger.info(f"Connecting to Gemini Live API with model: {self.model}")
            connection_start = time.time()
            self.ws = await asyncio.wait_for(
                websockets.connect(
                    url,
                    max_size=WS_MAX_SIZE,
                    max_queue=WS_MAX_QUEUE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=10,
                    compression=None,
                ),
                timeout=CONNECTION_TIMEOUT
            )
            logger.debug(f"WebSocket connection established in {time.time() - connection_start:.2f} seconds")

            setup = SetupMessage.build(self.model, directive, self.voice)
            await self.ws.send(setup.model_dump_json(exclude_none=True))
            await asyncio.wait_for(self._await_setup_complete(), timeout=SETUP_TIMEOUT)
        except (ConnectionFailed, asyncio.CancelledError):
            await self._abort()
            raise
        except asyncio.TimeoutError:
            logger.error("Timeout while connecting to Gemini Live API")
            await self._abort()
            raise ConnectionFailed("Timed out connecting to the Gemini Live API.")
        except Exception as e:
            logger.error(f"Failed to connect to Gemini Live API: {e}")
            logger.debug(f"Connection error details: {traceback.format_exc()}")
            await self._abort()
            raise ConnectionFailed(f"Could not connect to the Gemini Live API: {e}") from e

        self._connection_active = True
        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info("Gemini Live session established")

    async def _await_setup_complete(self) -> None:
        while True:
            message = self._parse(await self.ws.recv())
            if message is None:
                continue
            if message.error:
                raise ConnectionFailed(f"Gemini Live rejected the session: {message.error}")
            if message.setupComplete is not None:
                logger.debug("Received setupComplete")
                return

    async def _abort(self) -> None:
        self._connection_active = False
        if self.ws is not None:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"Error closing WebSocket after failed connect: {e}")
            self.ws = None

    async def send_audio(self, data: str) -> bool:
        """
        Send one base64 PCM16 frame as realtime input.

        Returns:
            bool: True if the frame was sent, False if it was dropped
        """
        if not self._connection_active or self.ws is None:
            logger.debug("Cannot send audio - connection not active")
            return False

        message = RealtimeInputMessage.audio(data)
        try:
            await asyncio.wait_for(self.ws.send(message.model_dump_json()), timeout=SEND_TIMEOUT)
            return True
        except asyncio.TimeoutError:
            logger.warning("Timeout while sending audio frame")
            return False
        except ConnectionClosed as e:
            logger.warning(f"Connection closed while sending audio: {e}")
            self._connection_active = False
            return False

    def _parse(self, message) -> Optional[ServerMessage]:
        try:
            if isinstance(message, bytes):
                message = message.decode("utf-8")
            return ServerMessage.model_validate(json.loads(message))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Received undecodable message: {e}")
        except ValidationError as e:
            logger.warning(f"Received unexpected message shape: {e}")
        return None

    async def _recv_loop(self) -> None:
        """Receive server messages until the connection closes or the client is closed."""
        try:
            while self._connection_active and not self._is_closing:
                try:
                    message = self._parse(await self.ws.recv())
                    if message is not None:
                        await self._dispatch(message)
                except (ConnectionClosed, asyncio.CancelledError):
                    raise
                except Exception as e:
                    logger.error(f"Error in receive loop iteration: {e}")
                    logger.debug(f"Receive error details: {traceback.format_exc()}")
        except ConnectionClosedOK:
            logger.info("Gemini Live connection closed normally")
        except ConnectionClosedError as e:
            logger.warning(f"Gemini Live connection closed unexpectedly: {e}")
        finally:
            self._connection_active = False
            logger.info("Receive loop exited, connection marked as inactive")

        if not self._is_closing and self._closed_handler:
            await self._closed_handler()

    async def _dispatch(self, message: ServerMessage) -> None:
        if message.error:
            logger.error(f"Received error from Gemini Live: {message.error}")
        if message.goAway:
            logger.warning(f"Gemini Live will close the session soon (time left: {message.goAway.timeLeft})")

        content = message.serverContent
        if content is None:
            return

        if content.interrupted:
            logger.debug("Agent turn interrupted")
            if self._interrupted_handler:
                await self._interrupted_handler()
        if self._audio_handler:
            for payload in content.audio_payloads():
                await self._audio_handler(payload)
        if self._text_handler:
            for text in content.texts():
                await self._text_handler(text)
        if content.turnComplete and self._turn_complete_handler:
            await self._turn_complete_handler()

    async def close(self) -> None:
        """Close the WebSocket connection and stop the receive loop. Safe to call twice."""
        logger.info("Closing Gemini Live client")
        self._is_closing = True
        self._connection_active = False

        task, self._recv_task = self._recv_task, None
        # close() may run from inside the receive loop via the closed handler
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Receive task cancelled")

        if self.ws is not None:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"Error closing WebSocket: {e}")
            self.ws = None

        logger.info("Gemini Live client closed")
