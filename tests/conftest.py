import asyncio
import logging

import numpy as np
import pytest

from cruise_control.errors import ConnectionFailed, DeviceUnavailable


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


async def drain(iterations: int = 10):
    """Let scheduled callbacks and tasks on the running loop make progress."""
    for _ in range(iterations):
        await asyncio.sleep(0)


def sine_frame(amplitude: float = 0.5, size: int = 4096, rate: int = 16000) -> np.ndarray:
    t = np.arange(size) / float(rate)
    return (amplitude * np.sin(2 * np.pi * 440 * t)).astype(np.float32)


class FakeDevice:
    """Stands in for AudioDevice: records what the pipeline asks of the hardware."""

    def __init__(self, fail_input: bool = False, fail_output: bool = False):
        self.fail_input = fail_input
        self.fail_output = fail_output
        self.on_frame = None
        self.input_rate = None
        self.frames_per_buffer = None
        self.output_rate = None
        self.written = []
        self.closed = False

    def open_input(self, rate, frames_per_buffer, on_frame):
        if self.fail_input:
            raise DeviceUnavailable("Permission denied")
        self.input_rate = rate
        self.frames_per_buffer = frames_per_buffer
        self.on_frame = on_frame

    def open_output(self, rate):
        if self.fail_output:
            raise DeviceUnavailable("No output device")
        self.output_rate = rate

    def write(self, samples):
        self.written.append(samples)

    def close(self):
        self.closed = True


class FakeLiveClient:
    """Stands in for LiveAudioClient without a network connection."""

    def __init__(self, api_key, model, voice, fail=False):
        self.api_key = api_key
        self.model = model
        self.voice = voice
        self.fail = fail
        self.directive = None
        self.handlers = {}
        self.sent = []
        self.connected = False
        self.closed = False

    @property
    def is_open(self):
        return self.connected and not self.closed

    def set_handlers(self, **handlers):
        self.handlers = handlers

    async def connect(self, directive):
        self.directive = directive
        if self.fail:
            raise ConnectionFailed("handshake rejected")
        self.connected = True

    async def send_audio(self, data):
        self.sent.append(data)
        return True

    async def close(self):
        self.closed = True


class FakeClientFactory:
    """Builds FakeLiveClients and remembers them; set ``fail`` to reject handshakes."""

    def __init__(self):
        self.clients = []
        self.fail = False

    def __call__(self, api_key, model, voice):
        client = FakeLiveClient(api_key, model, voice, fail=self.fail)
        self.clients.append(client)
        return client

    @property
    def open_clients(self):
        return [client for client in self.clients if client.is_open]


@pytest.fixture
def fake_device():
    return FakeDevice()


@pytest.fixture
def client_factory():
    return FakeClientFactory()
