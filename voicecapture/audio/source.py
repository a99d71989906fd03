"""Microphone sources producing fixed-size frames of 16-bit PCM."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import pyaudio

from ..errors import DeviceError, ReadError

logger = logging.getLogger(__name__)

BYTES_PER_SAMPLE = 2  # 16-bit signed little-endian


class AudioSource(ABC):
    """Blocking source of PCM frames, read one frame at a time in capture order."""

    def __init__(self, sample_rate: int = 16000, chunk_size: int = 1024, channels: int = 1):
        self.sample_rate = sample_rate
        self.chunk_size = chunk_size
        self.channels = channels

    @property
    def bytes_per_frame(self) -> int:
        return self.chunk_size * self.channels * BYTES_PER_SAMPLE

    def frame_duration_ms(self, byte_count: int) -> float:
        """Duration in milliseconds of ``byte_count`` bytes of audio."""
        bytes_per_second = self.sample_rate * self.channels * BYTES_PER_SAMPLE
        return byte_count * 1000.0 / bytes_per_second

    @abstractmethod
    def open(self) -> None:
        """Allocate the capture device.

        Raises:
            DeviceError: if the device cannot be opened with this format
        """

    @abstractmethod
    def read_frame(self) -> bytes:
        """Block until the next frame is available and return its bytes.

        Raises:
            ReadError: if the device fails during the read
        """

    @abstractmethod
    def close(self) -> None:
        """Release the device. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass


class PyAudioSource(AudioSource):
    """Default microphone input via PyAudio (mono, paInt16)."""

    def __init__(
        self,
        sample_rate: int = 16000,
        chunk_size: int = 1024,
        channels: int = 1,
        device_index: Optional[int] = None,
    ):
        """Initialize a PyAudio input source.

        Args:
            sample_rate: Audio sample rate (16kHz for speech services)
            chunk_size: Size of each audio frame in samples
            channels: Number of audio channels (1 for mono)
            device_index: PyAudio input device, or None for the default
        """
        super().__init__(sample_rate=sample_rate, chunk_size=chunk_size, channels=channels)
        self.format = pyaudio.paInt16
        self.device_index = device_index
        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

    @property
    def is_open(self) -> bool:
        return self.stream is not None

    def open(self) -> None:
        if self.stream is not None:
            logger.warning("Audio stream already open")
            return

        try:
            self.pyaudio_instance = pyaudio.PyAudio()
            self.stream = self.pyaudio_instance.open(
                format=self.format,
                channels=self.channels,
                rate=self.sample_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=self.chunk_size,
                stream_callback=None
            )
        except (OSError, ValueError) as e:
            self.close()
            raise DeviceError(
                f"Cannot open input device at {self.sample_rate}Hz/{self.channels}ch/16-bit: {e}"
            ) from e

        logger.info(f"Audio stream opened: {self.sample_rate}Hz, "
                    f"{self.chunk_size} samples/chunk")

    def read_frame(self) -> bytes:
        if self.stream is None:
            raise ReadError("Audio stream is not open")
        try:
            return self.stream.read(self.chunk_size, exception_on_overflow=False)
        except (OSError, IOError) as e:
            raise ReadError(f"Audio read failed: {e}") from e

    def close(self) -> None:
        stream, self.stream = self.stream, None
        if stream is not None:
            try:
                stream.stop_stream()
                stream.close()
            except OSError as e:
                logger.warning(f"Error closing audio stream: {e}")
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None
            logger.info("Audio device released")
