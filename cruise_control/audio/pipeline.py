"""
Audio pipeline for one call.

The pipeline owns the capture device, the playback output and the continuous recorder
from ``start()`` until ``stop()``. Each captured block goes through ``process_frame``
on the PortAudio callback thread: it is metered, recorded and, while the agent is
engaged, encoded and handed to the event loop for streaming. Agent audio arrives through
``playback`` on the event loop and is sent to the speakers and the recording.

Agent loudness is not measured from the played-back signal. While a segment plays the
agent level is pinned to a fixed value and reset to zero once the segment's duration
has elapsed; this is enough for a "speaking" indicator.
"""

import asyncio
import logging
import queue
import threading
from typing import Callable, Optional

import numpy as np

from cruise_control.audio.codec import encode
from cruise_control.audio.devices import AudioDevice
from cruise_control.audio.meter import level
from cruise_control.audio.recorder import CallRecorder
from cruise_control.config.constants import (
    AGENT_SPEAKING_LEVEL,
    BLOCK_SIZE,
    CAPTURE_SAMPLE_RATE,
    LOGGER_NAME,
    PLAYBACK_SAMPLE_RATE,
)
from cruise_control.errors import DeviceUnavailable
from cruise_control.models.call_session import VolumeSample

logger = logging.getLogger(LOGGER_NAME)

PLAYBACK_JOIN_TIMEOUT = 2.0  # seconds

VolumeCallback = Callable[[VolumeSample], None]
FrameSink = Callable[[str], None]


class AudioPipeline:
    """
    Capture, playback and recording for the duration of a call.

    Args:
        on_volume: Receives a ``VolumeSample`` on every captured block and playback event
        device_factory: Builds the ``AudioDevice``; replaced in tests
        sample_rate: Capture rate, matches the remote model's input rate
        block_size: Samples per capture callback
        playback_rate: Rate of the audio emitted by the remote model
    """

    def __init__(self, on_volume: Optional[VolumeCallback] = None,
                 device_factory: Callable[[], AudioDevice] = AudioDevice,
                 sample_rate: int = CAPTURE_SAMPLE_RATE,
                 block_size: int = BLOCK_SIZE,
                 playback_rate: int = PLAYBACK_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.playback_rate = playback_rate
        self.recorder = CallRecorder(sample_rate)
        self.device: Optional[AudioDevice] = None

        self._on_volume = on_volume
        self._device_factory = device_factory
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._frame_sink: Optional[FrameSink] = None
        self._running = False
        self._user_level = 0.0
        self._agent_level = 0.0
        self._reset_handle: Optional[asyncio.TimerHandle] = None
        self._output_queue: "queue.Queue[Optional[np.ndarray]]" = queue.Queue()
        self._playback_thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def volume(self) -> VolumeSample:
        return VolumeSample(self._user_level, self._agent_level)

    @property
    def streaming(self) -> bool:
        return self._frame_sink is not None

    def start(self) -> None:
        """
        Acquire the devices and start capturing and recording.

        Must be called from the event loop that will receive streamed frames.

        Raises:
            DeviceUnavailable: if the microphone or output cannot be opened; anything
                acquired so far is released first
        """
        if self._running:
            logger.warning("Audio pipeline already running")
            return

        self._loop = asyncio.get_running_loop()
        device = None
        try:
            device = self._device_factory()
            device.open_output(self.playback_rate)
            self.recorder.start()
            self._running = True
            device.open_input(self.sample_rate, self.block_size, self.process_frame)
        except DeviceUnavailable as e:
            logger.error(f"Failed to start audio pipeline: {e}")
            self._running = False
            self.recorder.discard()
            if device is not None:
                device.close()
            raise

        self.device = device
        self._playback_thread = threading.Thread(
            target=self._playback_worker, args=(device,), name="cruise-control-playback", daemon=True
        )
        self._playback_thread.start()
        logger.info(f"Audio pipeline started: capture {self.sample_rate}Hz, playback {self.playback_rate}Hz")

    def attach_sink(self, sink: FrameSink) -> None:
        """Start forwarding encoded frames to ``sink`` (called on the event loop)."""
        self._frame_sink = sink
        logger.debug("Frame sink attached")

    def detach_sink(self) -> None:
        self._frame_sink = None
        logger.debug("Frame sink detached")

    def process_frame(self, samples: np.ndarray) -> None:
        """Handle one captured block; runs on the capture thread and must not block."""
        if not self._running:
            return

        self._user_level = level(samples)
        self._emit()
        self.recorder.write_input(samples)

        sink = self._frame_sink
        if sink is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(sink, encode(samples))

    def playback(self, samples: np.ndarray, duration: float) -> None:
        """
        Play an agent audio segment and mix it into the recording.

        Args:
            samples: Decoded float32 samples at ``playback_rate``
            duration: Segment length in seconds, used to time the agent level reset
        """
        if not self._running:
            logger.debug(f"Dropping {len(samples)} samples of agent audio: pipeline not running")
            return

        self._output_queue.put(samples)
        self.recorder.write_playback(samples, self.playback_rate)

        self._agent_level = AGENT_SPEAKING_LEVEL
        self._emit()
        if self._reset_handle is not None:
            self._reset_handle.cancel()
        self._reset_handle = self._loop.call_later(duration, self._reset_agent_level)

    def clear_playback(self) -> int:
        """Drop agent audio that has not reached the speakers yet."""
        dropped = 0
        while True:
            try:
                item = self._output_queue.get_nowait()
            except queue.Empty:
                break
            if item is None:
                # keep the shutdown sentinel for the worker
                self._output_queue.put(None)
                break
            dropped += 1
        if dropped:
            logger.debug(f"Cleared {dropped} queued playback segments")
        return dropped

    def stop(self) -> Optional[bytes]:
        """
        Release every device and finalize the recording.

        Safe to call while a capture callback is in flight and safe to call twice.
        Devices are released even if finalizing the recording fails.

        Returns:
            bytes: The WAV recording, or None if no recording was active

        Raises:
            RecorderFlushError: if the recording could not be finalized
        """
        self._running = False
        self._frame_sink = None
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        self._user_level = 0.0
        self._agent_level = 0.0

        try:
            if self._playback_thread is not None:
                self.clear_playback()
                self._output_queue.put(None)
                self._playback_thread.join(timeout=PLAYBACK_JOIN_TIMEOUT)
                if self._playback_thread.is_alive():
                    logger.warning("Playback thread did not exit in time")
                self._playback_thread = None
            if self.device is not None:
                # closing the input stream waits for the running callback to return
                self.device.close()
                self.device = None
        finally:
            data = self.recorder.stop()

        logger.info("Audio pipeline stopped")
        return data

    def _playback_worker(self, device: AudioDevice) -> None:
        while True:
            samples = self._output_queue.get()
            if samples is None:
                break
            try:
                device.write(samples)
            except OSError as e:
                logger.warning(f"Error playing agent audio: {e}")

    def _reset_agent_level(self) -> None:
        self._reset_handle = None
        self._agent_level = 0.0
        self._emit()

    def _emit(self) -> None:
        if self._on_volume is not None:
            self._on_volume(self.volume)
