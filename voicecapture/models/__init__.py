"""Data models for the voicecapture package."""

from .transcription import TranscriptionResult, TranscriptionRequest
from .audio import AudioStats, AudioFrame, BufferStats
from .events import VoiceActivityState, VoiceActivityEvent, SessionState
from .status import CaptureStatus

__all__ = [
    "TranscriptionResult",
    "TranscriptionRequest",
    "AudioStats",
    "AudioFrame",
    "BufferStats",
    "VoiceActivityState",
    "VoiceActivityEvent",
    "SessionState",
    "CaptureStatus",
]
