"""
Audio handling for a cruise-control call.

Key components:
- codec: float samples <-> little-endian PCM16 <-> base64, as spoken by Gemini Live.
- meter: RMS loudness in [0, 100] for the volume indicator.
- devices: PyAudio microphone and speaker streams.
- recorder: continuous mixed recording of both legs of the call, finalized as WAV.
- pipeline: ties the above together for the lifetime of one call.
"""

from cruise_control.audio.codec import decode, encode
from cruise_control.audio.meter import level
from cruise_control.audio.pipeline import AudioPipeline
from cruise_control.audio.recorder import CallRecorder

__all__ = ["AudioPipeline", "CallRecorder", "decode", "encode", "level"]
