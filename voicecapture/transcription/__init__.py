"""Transcription module for voicecapture."""

from .base import AbstractTranscriptionBackend
from ..models.transcription import TranscriptionResult
from .gemini_backend import GeminiTranscriptionBackend
from .orchestrator import TranscriptionOrchestrator, TranscriptionJob

__all__ = [
    "AbstractTranscriptionBackend",
    "TranscriptionResult",
    "GeminiTranscriptionBackend",
    "TranscriptionOrchestrator",
    "TranscriptionJob",
]
