"""
Constants and configuration values used throughout the application.

This module defines constants that are used across different parts of the application,
providing a centralized location for audio formats, wire protocol values and the
defaults used when talking to the Gemini Live API.
"""

# Logger name used throughout the application
LOGGER_NAME = "cruise_control"

# Capture side: what the remote model expects as input
CAPTURE_SAMPLE_RATE = 16000
BLOCK_SIZE = 4096  # samples per capture callback (~256ms at 16kHz)
CHANNELS = 1

# Playback side: what the remote model emits
PLAYBACK_SAMPLE_RATE = 24000

# PCM16 wire format
PCM16_SCALE = 32768
INPUT_MIME_TYPE = f"audio/pcm;rate={CAPTURE_SAMPLE_RATE}"

# Gemini Live defaults
LIVE_ENDPOINT = (
    "wss://generativelanguage.googleapis.com/ws/"
    "google.ai.generativelanguage.v1beta.GenerativeService.BidiGenerateContent"
)
DEFAULT_LIVE_MODEL = "gemini-2.5-flash-native-audio-preview-09-2025"
DEFAULT_VOICE = "Kore"
RESPONSE_MODALITY_AUDIO = "AUDIO"

# Phrase the monitoring agent speaks when a human picks up
ALERT_PHRASE = "user alert"

# Synthetic agent level shown while inbound audio is playing
AGENT_SPEAKING_LEVEL = 50.0

# Recording artifact
RECORDING_PREFIX = "cruise-control"
RECORDING_MIME_TYPE = "audio/wav"
RECORDING_EXTENSION = "wav"
