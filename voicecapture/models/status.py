"""Snapshot models reported by a running capture session."""

from dataclasses import dataclass
from typing import Optional

from .events import SessionState, VoiceActivityState
from .transcription import TranscriptionResult


@dataclass
class CaptureStatus:
    """Point-in-time view of a CaptureController."""
    session_id: str
    state: SessionState
    voice_state: VoiceActivityState
    audio_level: float
    peak_level: float
    recognized_text: str
    last_result: Optional[TranscriptionResult]
    buffered_bytes: int
    total_chunks: int
    read_errors: int
    transcription_in_flight: bool

    @property
    def is_running(self) -> bool:
        return self.state is SessionState.RUNNING
