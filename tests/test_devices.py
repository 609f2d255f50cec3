"""Unit tests for the PyAudio device wrapper, with PyAudio itself mocked."""

from unittest.mock import MagicMock, patch

import numpy as np
import pyaudio
import pytest

from cruise_control.audio.devices import AudioDevice
from cruise_control.errors import DeviceUnavailable


@pytest.fixture
def mock_pyaudio():
    with patch("cruise_control.audio.devices.pyaudio.PyAudio") as mock_cls:
        yield mock_cls.return_value


def test_audio_system_unavailable():
    with patch("cruise_control.audio.devices.pyaudio.PyAudio", side_effect=OSError("no ALSA")):
        with pytest.raises(DeviceUnavailable, match="no ALSA"):
            AudioDevice()


def test_open_input_delivers_float_frames(mock_pyaudio):
    frames = []
    device = AudioDevice()

    device.open_input(16000, 4096, frames.append)

    kwargs = mock_pyaudio.open.call_args.kwargs
    assert kwargs["format"] == pyaudio.paFloat32
    assert kwargs["rate"] == 16000
    assert kwargs["frames_per_buffer"] == 4096
    assert kwargs["input"] is True
    mock_pyaudio.open.return_value.start_stream.assert_called_once()

    block = np.array([0.25, -0.5], dtype=np.float32)
    result = kwargs["stream_callback"](block.tobytes(), 2, {}, 0)

    assert result == (None, pyaudio.paContinue)
    assert np.array_equal(frames[0], block)


def test_no_input_device_is_unavailable(mock_pyaudio):
    mock_pyaudio.get_default_input_device_info.side_effect = OSError("No Default Input Device Available")
    device = AudioDevice()

    with pytest.raises(DeviceUnavailable, match="Could not open microphone"):
        device.open_input(16000, 4096, lambda frame: None)

    mock_pyaudio.open.assert_not_called()


def test_output_failure_is_unavailable(mock_pyaudio):
    mock_pyaudio.open.side_effect = OSError("Invalid output device")
    device = AudioDevice()

    with pytest.raises(DeviceUnavailable, match="output device"):
        device.open_output(24000)


def test_write_sends_float32_bytes(mock_pyaudio):
    device = AudioDevice()
    device.open_output(24000)

    device.write([0.5, 0.25])

    written = mock_pyaudio.open.return_value.write.call_args.args[0]
    assert np.array_equal(np.frombuffer(written, dtype=np.float32), [0.5, 0.25])


def test_close_releases_everything_once(mock_pyaudio):
    stream = MagicMock()
    stream.is_active.return_value = True
    mock_pyaudio.open.return_value = stream
    device = AudioDevice()
    device.open_output(24000)
    device.open_input(16000, 4096, lambda frame: None)

    device.close()
    device.close()

    assert stream.stop_stream.call_count == 2
    assert stream.close.call_count == 2
    mock_pyaudio.terminate.assert_called_once()
    assert device.input_stream is None and device.output_stream is None
