"""Audio-related data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class AudioStats:
    """Audio capture statistics for a session."""
    is_recording: bool
    duration_seconds: float
    buffered_bytes: int
    sample_rate: int
    chunk_size: int
    total_chunks: int
    read_errors: int = 0


@dataclass
class AudioFrame:
    """A single audio frame with timestamp."""
    data: bytes
    timestamp: float  # Time when this frame was captured
    frame_number: int


@dataclass
class BufferStats:
    """Snapshot of a RollingAudioBuffer."""
    frame_count: int
    total_bytes: int
    capacity_bytes: int
    capacity_seconds: float
    evicted_bytes: int
    oldest_timestamp: Optional[float] = None
    newest_timestamp: Optional[float] = None
