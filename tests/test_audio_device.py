import pytest
from unittest.mock import MagicMock, patch

from plushpal.bot.audio_device import PyAudioDevice


class TestPyAudioDevice:
    """Tests for the PyAudio-backed device"""

    def test_open_input(self):
        with patch('pyaudio.PyAudio') as mock_pyaudio:
            mock_stream = MagicMock()
            mock_pyaudio.return_value.open.return_value = mock_stream

            device = PyAudioDevice(input_device_index=2)
            device.open_input()
            device.open_input()

            # PyAudio is created lazily and only once
            mock_pyaudio.assert_called_once()
            mock_pyaudio.return_value.open.assert_called_once()
            call_args = mock_pyaudio.return_value.open.call_args[1]
            assert call_args['format'] == 8  # pyaudio.paInt16
            assert call_args['channels'] == 1
            assert call_args['rate'] == 48000
            assert call_args['input'] is True
            assert call_args['input_device_index'] == 2
            assert call_args['frames_per_buffer'] == 960

    def test_read(self):
        with patch('pyaudio.PyAudio') as mock_pyaudio:
            mock_stream = MagicMock()
            mock_stream.read.return_value = b"\x00\x00" * 960
            mock_pyaudio.return_value.open.return_value = mock_stream

            device = PyAudioDevice()
            device.open_input()

            assert device.read() == b"\x00\x00" * 960
            mock_stream.read.assert_called_once_with(960, exception_on_overflow=False)

    def test_read_without_stream(self):
        device = PyAudioDevice()
        with pytest.raises(OSError):
            device.read()

    def test_write_without_stream(self):
        device = PyAudioDevice()
        with pytest.raises(OSError):
            device.write(b"\x00\x00")

    def test_write(self):
        with patch('pyaudio.PyAudio') as mock_pyaudio:
            mock_stream = MagicMock()
            mock_pyaudio.return_value.open.return_value = mock_stream

            device = PyAudioDevice(output_device_index=1)
            device.open_output()
            device.write(b"\x01\x00")

            call_args = mock_pyaudio.return_value.open.call_args[1]
            assert call_args['output'] is True
            assert call_args['output_device_index'] == 1
            mock_stream.write.assert_called_once_with(b"\x01\x00")

    def test_terminate(self):
        with patch('pyaudio.PyAudio') as mock_pyaudio:
            input_stream, output_stream = MagicMock(), MagicMock()
            mock_pyaudio.return_value.open.side_effect = [input_stream, output_stream]

            device = PyAudioDevice()
            device.open_input()
            device.open_output()
            device.terminate()

            input_stream.stop_stream.assert_called_once()
            input_stream.close.assert_called_once()
            output_stream.close.assert_called_once()
            mock_pyaudio.return_value.terminate.assert_called_once()
            assert device.p is None

            # Safe to call again
            device.terminate()
