"""Pytest configuration and fixtures for voicecapture tests."""

import time
import pytest
import asyncio
import logging
import threading
from unittest.mock import Mock, patch
import numpy as np

from voicecapture.audio.source import AudioSource
from voicecapture.errors import ReadError
from voicecapture.models.transcription import TranscriptionResult
from voicecapture.services.publisher import CaptureObserver
from voicecapture.transcription.base import AbstractTranscriptionBackend


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests without hardware or network")
    config.addinivalue_line("markers", "integration: tests that run threads end to end")
    config.addinivalue_line("markers", "slow: tests that take more than a second")


def constant_frame(value: int, samples: int = 160) -> bytes:
    """A frame whose every sample equals ``value``, so its RMS level is abs(value)."""
    return np.full(samples, value, dtype='<i2').tobytes()


@pytest.fixture
def frame_of_level():
    """Build constant-amplitude frames with a known RMS level."""
    return constant_frame


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate  # ~0.064 seconds
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_device_count.return_value = 0

        # Configure mock PyAudio class
        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000, amplitude=0.5):
        """Generate audio data for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz
            amplitude: Peak amplitude as a fraction of full scale

        Returns:
            bytes: Audio data as bytes
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t)  # 440 Hz sine wave
        elif pattern == "noise":
            rng = np.random.default_rng(1234)
            wave_data = rng.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        audio_data = (wave_data * amplitude * 32767).astype(np.int16)
        return audio_data.tobytes()

    return generate_audio


class ScriptedAudioSource(AudioSource):
    """AudioSource that replays a fixed list of frames, then silence.

    An item that is an exception instance is raised from read_frame instead
    of being returned.
    """

    def __init__(self, frames=None, sample_rate=16000, chunk_size=160,
                 open_error=None, idle_frame=None, frame_interval=0.001):
        super().__init__(sample_rate=sample_rate, chunk_size=chunk_size, channels=1)
        self.frames = list(frames or [])
        self.open_error = open_error
        self.idle_frame = idle_frame if idle_frame is not None else constant_frame(0, chunk_size)
        self.frame_interval = frame_interval
        self.opened = 0
        self.closed = 0
        self.frames_read = 0
        self.exhausted = threading.Event()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        if self.open_error is not None:
            raise self.open_error
        self.opened += 1
        self._open = True

    def read_frame(self) -> bytes:
        if not self._open:
            raise ReadError("source closed")
        time.sleep(self.frame_interval)
        if not self.frames:
            self.exhausted.set()
            return self.idle_frame
        item = self.frames.pop(0)
        if isinstance(item, Exception):
            raise item
        self.frames_read += 1
        return item

    def close(self) -> None:
        self.closed += 1
        self._open = False


class FakeBackend(AbstractTranscriptionBackend):
    """In-memory transcription backend recording every call."""

    method_name = "fake"

    def __init__(self, results=None, delay=0.0):
        self.results = list(results or [])
        self.delay = delay
        self.calls = []
        self.closed = False
        self.called = threading.Event()

    def is_ready(self) -> bool:
        return True

    async def transcribe(self, payload, format_descriptor, mime_type="audio/wav"):
        self.calls.append((payload, format_descriptor, mime_type))
        self.called.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.results:
            return self.results.pop(0)
        return TranscriptionResult(success=True, text="hello world", confidence=0.8,
                                   method=self.method_name)

    async def close(self) -> None:
        self.closed = True


class RecordingObserver(CaptureObserver):
    """Observer that records every event it receives."""

    def __init__(self):
        self.events = []
        self.results = []
        self.texts = []
        self.errors = []
        self.states = []
        self.levels = []
        self.started = threading.Event()
        self.stopped = threading.Event()
        self.result_received = threading.Event()
        self.error_received = threading.Event()

    def on_recording_started(self):
        self.events.append("recording_started")
        self.started.set()

    def on_recording_stopped(self):
        self.events.append("recording_stopped")
        self.stopped.set()

    def on_permission_error(self, message):
        self.events.append("permission_error")
        self.errors.append(message)
        self.error_received.set()

    def on_error(self, message):
        self.events.append("error")
        self.errors.append(message)
        self.error_received.set()

    def on_transcription_completed(self, result):
        self.events.append("transcription_completed")
        self.results.append(result)
        self.result_received.set()

    def on_voice_state(self, state):
        self.states.append(state)

    def on_audio_level(self, level):
        self.levels.append(level)

    def on_recognized_text(self, text):
        self.texts.append(text)


@pytest.fixture
def scripted_source():
    return ScriptedAudioSource


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def recording_observer():
    return RecordingObserver()

