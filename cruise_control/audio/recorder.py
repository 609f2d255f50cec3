"""
Continuous call recorder.

The recorder keeps one mixed track for the whole call. Microphone blocks are appended
as PCM16 chunks in capture order; audio played back from the agent is resampled to the
capture rate and overlaid onto the microphone blocks that are captured while it plays.
At call end the chunks are finalized into a single WAV file exactly once.
"""

import io
import logging
import threading
import wave
from typing import List, Optional

import numpy as np

from cruise_control.audio.codec import float_to_pcm16
from cruise_control.config.constants import CAPTURE_SAMPLE_RATE, CHANNELS, LOGGER_NAME
from cruise_control.errors import RecorderFlushError

logger = logging.getLogger(LOGGER_NAME)

SAMPLE_WIDTH = 2  # bytes, PCM16


def resample(samples: np.ndarray, src_rate: int, dst_rate: int) -> np.ndarray:
    """Linear-interpolation resampling, adequate for a voice recording."""
    samples = np.asarray(samples, dtype=np.float32)
    if src_rate == dst_rate or samples.size == 0:
        return samples
    target_len = max(1, int(round(samples.size * dst_rate / float(src_rate))))
    positions = np.linspace(0, samples.size - 1, num=target_len)
    return np.interp(positions, np.arange(samples.size), samples).astype(np.float32)


class CallRecorder:
    """Mixes both legs of the call into an ordered list of PCM16 chunks."""

    def __init__(self, sample_rate: int = CAPTURE_SAMPLE_RATE):
        self.sample_rate = sample_rate
        self._chunks: List[bytes] = []
        self._overlay = np.zeros(0, dtype=np.float32)
        self._lock = threading.Lock()
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def start(self) -> None:
        with self._lock:
            self._chunks = []
            self._overlay = np.zeros(0, dtype=np.float32)
            self._active = True
        logger.debug(f"Recorder started at {self.sample_rate}Hz")

    def write_input(self, samples: np.ndarray) -> None:
        """Append one microphone block, mixed with any overlapping playback."""
        with self._lock:
            if not self._active:
                return
            mixed = np.array(samples, dtype=np.float32)
            overlap = min(mixed.size, self._overlay.size)
            if overlap:
                mixed[:overlap] += self._overlay[:overlap]
                self._overlay = self._overlay[overlap:]
            self._chunks.append(float_to_pcm16(mixed))

    def write_playback(self, samples: np.ndarray, sample_rate: int) -> None:
        """
        Overlay agent audio onto the blocks that will be captured while it plays.

        Segments play back to back, so each one is scheduled after the playback
        that is still pending rather than on top of it.
        """
        converted = resample(samples, sample_rate, self.sample_rate)
        with self._lock:
            if not self._active:
                return
            self._overlay = np.concatenate([self._overlay, converted])

    def stop(self) -> Optional[bytes]:
        """
        Finalize the recording into WAV bytes.

        Playback that had not yet been overlaid onto captured audio is flushed as a
        final chunk. The recorder is inactive afterwards, so a second call returns None.

        Returns:
            bytes: The WAV file, or None if the recorder was not active

        Raises:
            RecorderFlushError: if the WAV container could not be written
        """
        with self._lock:
            if not self._active:
                return None
            self._active = False
            if self._overlay.size:
                self._chunks.append(float_to_pcm16(self._overlay))
                self._overlay = np.zeros(0, dtype=np.float32)
            chunks, self._chunks = self._chunks, []

        buffer = io.BytesIO()
        try:
            with wave.open(buffer, "wb") as wf:
                wf.setnchannels(CHANNELS)
                wf.setsampwidth(SAMPLE_WIDTH)
                wf.setframerate(self.sample_rate)
                wf.writeframes(b"".join(chunks))
        except (wave.Error, OSError, ValueError) as e:
            raise RecorderFlushError(f"Could not finalize recording: {e}") from e

        data = buffer.getvalue()
        logger.info(f"Recording finalized: {len(chunks)} chunks, {len(data)} bytes")
        return data

    def discard(self) -> None:
        """Drop everything recorded so far without producing an artifact."""
        with self._lock:
            self._active = False
            self._chunks = []
            self._overlay = np.zeros(0, dtype=np.float32)
