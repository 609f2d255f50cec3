"""
PyAudio device access for the call.

``AudioDevice`` wraps one PyAudio instance for the lifetime of a call: a callback-mode
microphone stream and a blocking output stream written from a playback thread. Every
PortAudio failure while acquiring a stream surfaces as ``DeviceUnavailable``.
"""

import logging
from typing import Callable

import numpy as np
import pyaudio

from cruise_control.config.constants import CHANNELS, LOGGER_NAME
from cruise_control.errors import DeviceUnavailable

logger = logging.getLogger(LOGGER_NAME)

FORMAT = pyaudio.paFloat32
SAMPLE_DTYPE = np.float32

FrameCallback = Callable[[np.ndarray], None]


class AudioDevice:
    """Owns the PyAudio instance and the streams opened for one call."""

    def __init__(self):
        try:
            self.p = pyaudio.PyAudio()
        except OSError as e:
            raise DeviceUnavailable(f"Audio system unavailable: {e}") from e
        self.input_stream = None
        self.output_stream = None

    def open_input(self, rate: int, frames_per_buffer: int, on_frame: FrameCallback) -> None:
        """
        Open and start the microphone stream in callback mode.

        Args:
            rate: Capture sample rate in Hz
            frames_per_buffer: Samples delivered per callback
            on_frame: Called on the PortAudio thread with each float32 block
        """
        def _callback(in_data, frame_count, time_info, status):
            if status:
                logger.debug(f"Input stream status flags: {status}")
            on_frame(np.frombuffer(in_data, dtype=SAMPLE_DTYPE))
            return (None, pyaudio.paContinue)

        try:
            self.p.get_default_input_device_info()
            self.input_stream = self.p.open(
                format=FORMAT,
                channels=CHANNELS,
                rate=rate,
                input=True,
                frames_per_buffer=frames_per_buffer,
                stream_callback=_callback,
            )
            self.input_stream.start_stream()
        except OSError as e:
            raise DeviceUnavailable(f"Could not open microphone: {e}") from e
        logger.info(f"Microphone initialized: {rate}Hz, {CHANNELS} channel(s), {frames_per_buffer} samples/block")

    def open_output(self, rate: int) -> None:
        try:
            self.output_stream = self.p.open(
                format=FORMAT,
                channels=CHANNELS,
                rate=rate,
                output=True,
            )
        except OSError as e:
            raise DeviceUnavailable(f"Could not open output device: {e}") from e
        logger.info(f"Output stream initialized: {rate}Hz")

    def write(self, samples: np.ndarray) -> None:
        """Blocking write of float32 samples to the output stream."""
        if self.output_stream is not None:
            self.output_stream.write(np.asarray(samples, dtype=SAMPLE_DTYPE).tobytes())

    def close(self) -> None:
        """Stop and close every stream, then terminate PyAudio. Safe to call twice."""
        for name in ("input_stream", "output_stream"):
            stream = getattr(self, name)
            if stream is None:
                continue
            try:
                if stream.is_active():
                    stream.stop_stream()
                stream.close()
            except OSError as e:
                logger.warning(f"Error closing {name}: {e}")
            setattr(self, name, None)
        if self.p is not None:
            self.p.terminate()
            self.p = None
        logger.info("Audio device released")
