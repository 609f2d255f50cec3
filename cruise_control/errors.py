"""Exceptions raised by the audio pipeline, the streaming session and the call controller.

Each exception carries the HTTP status the presentation boundary reports for it and
a user-facing default message.
"""

from typing import Optional


class CruiseControlError(Exception):
    status_code: int = 500
    default_detail: str = "Cruise control error"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class DeviceUnavailable(CruiseControlError):
    status_code = 503
    default_detail = "Microphone unavailable: permission denied or no input device."


class ConnectionFailed(CruiseControlError):
    status_code = 502
    default_detail = "Could not connect to the conversational agent."


class DecodeError(CruiseControlError):
    status_code = 422
    default_detail = "Malformed inbound audio payload."


class RecorderFlushError(CruiseControlError):
    status_code = 500
    default_detail = "No recording available: the call audio could not be finalized."
