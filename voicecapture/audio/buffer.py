"""Rolling audio buffer holding the audio captured since the last drain."""

import time
import logging
import threading
from collections import deque
from ..models.audio import AudioFrame, BufferStats

logger = logging.getLogger(__name__)


class RollingAudioBuffer:
    """Bounded, thread-safe byte accumulator with sliding-window eviction.

    The capture loop appends every frame; the transcription job drains the
    whole buffer once an utterance ends. When the capacity is exceeded the
    oldest bytes are discarded during append (never during drain), trimming
    partial frames so the retained bytes are exactly the most recent
    ``max_buffer_bytes`` appended.
    """

    def __init__(self, duration_seconds: float, sample_rate: int = 16000, channels: int = 1):
        """Initialize rolling audio buffer.

        Args:
            duration_seconds: How many seconds of audio to keep in buffer
            sample_rate: Audio sample rate
            channels: Number of audio channels
        """
        self.duration_seconds = duration_seconds
        self.sample_rate = sample_rate
        self.channels = channels
        self.bytes_per_sample = 2  # 16-bit audio

        self.bytes_per_second = sample_rate * channels * self.bytes_per_sample
        # Whole samples only, so eviction never splits one
        frame_bytes = self.bytes_per_sample * channels
        self.max_buffer_bytes = int(self.bytes_per_second * duration_seconds) // frame_bytes * frame_bytes

        self.buffer = deque()
        self.lock = threading.Lock()
        self.total_bytes = 0
        self.evicted_bytes = 0
        self.frame_counter = 0

        logger.info(f"RollingAudioBuffer initialized: {duration_seconds}s capacity, "
                   f"{self.max_buffer_bytes} bytes max")

    def append(self, audio_data: bytes) -> None:
        """Add audio bytes, evicting the oldest bytes beyond capacity."""
        if not audio_data:
            return

        with self.lock:
            frame = AudioFrame(
                data=bytes(audio_data),
                timestamp=time.time(),
                frame_number=self.frame_counter
            )
            self.frame_counter += 1

            self.buffer.append(frame)
            self.total_bytes += len(frame.data)

            excess = self.total_bytes - self.max_buffer_bytes
            while excess > 0 and self.buffer:
                oldest = self.buffer[0]
                if len(oldest.data) <= excess:
                    self.buffer.popleft()
                    removed = len(oldest.data)
                else:
                    oldest.data = oldest.data[excess:]
                    removed = excess
                self.total_bytes -= removed
                self.evicted_bytes += removed
                excess -= removed

    def drain_all(self) -> bytes:
        """Atomically empty the buffer and return its prior contents."""
        with self.lock:
            drained = b''.join(frame.data for frame in self.buffer)
            self.buffer.clear()
            self.total_bytes = 0

        logger.debug(f"Drained {len(drained)} bytes from audio buffer")
        return drained

    def __len__(self) -> int:
        with self.lock:
            return self.total_bytes

    def get_buffer_stats(self) -> BufferStats:
        """Get buffer statistics."""
        with self.lock:
            return BufferStats(
                frame_count=len(self.buffer),
                total_bytes=self.total_bytes,
                capacity_bytes=self.max_buffer_bytes,
                capacity_seconds=self.duration_seconds,
                evicted_bytes=self.evicted_bytes,
                oldest_timestamp=self.buffer[0].timestamp if self.buffer else None,
                newest_timestamp=self.buffer[-1].timestamp if self.buffer else None,
            )

    def clear(self) -> None:
        """Clear the buffer."""
        with self.lock:
            self.buffer.clear()
            self.total_bytes = 0
            self.evicted_bytes = 0
            self.frame_counter = 0
            logger.debug("Audio buffer cleared")
