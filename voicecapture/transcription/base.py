"""Abstract base class for remote transcription backends."""

from abc import ABC, abstractmethod
import logging

from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)


class AbstractTranscriptionBackend(ABC):
    """Abstract base class for transcription backends.

    Implementations never raise past ``transcribe``: every failure is
    reported as a ``TranscriptionResult`` with ``success=False``. Only task
    cancellation propagates.
    """

    method_name = "unknown"

    @abstractmethod
    async def transcribe(self, payload: str, format_descriptor: str,
                         mime_type: str = "audio/wav") -> TranscriptionResult:
        """Transcribe an encoded utterance.

        Args:
            payload: Base64 encoded audio container
            format_descriptor: Human readable audio format, e.g. "PCM 16-bit mono 16000Hz"
            mime_type: MIME type of the decoded payload

        Returns:
            TranscriptionResult with transcription and metadata
        """

    @abstractmethod
    def is_ready(self) -> bool:
        """True if the backend has what it needs (credentials etc.) to transcribe."""

    async def close(self) -> None:
        """Release network resources. Called on the loop that ran ``transcribe``."""
