"""Transcription-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class TranscriptionRequest:
    """Encoded utterance ready to be sent to a transcription backend."""
    payload: str  # base64 encoded container
    format_descriptor: str  # e.g. "PCM 16-bit mono 16000Hz"
    mime_type: str = "audio/wav"
    audio_bytes: int = 0  # size of the PCM data before encoding


@dataclass(frozen=True)
class TranscriptionResult:
    """Result of a transcription operation.

    Instances are immutable and delivered exactly once per request.
    """
    success: bool
    text: str = ""
    confidence: float = 0.0
    method: str = ""
    processing_time_ms: int = 0
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def failure(cls, error: str, method: str = "", processing_time_ms: int = 0) -> "TranscriptionResult":
        """Build a failed result carrying a human-readable error."""
        return cls(
            success=False,
            error=error,
            method=method,
            processing_time_ms=processing_time_ms,
        )

    @property
    def has_text(self) -> bool:
        return self.success and bool(self.text)
