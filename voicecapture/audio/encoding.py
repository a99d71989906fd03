"""Transport encoding of processed utterances."""

import io
import wave
import base64
import logging

from ..errors import EncodingError
from ..models.transcription import TranscriptionRequest

logger = logging.getLogger(__name__)


class AudioEncoder:
    """Wraps 16-bit PCM in a WAV container and base64-encodes it."""

    mime_type = "audio/wav"

    def __init__(self, sample_rate: int = 16000, channels: int = 1):
        self.sample_rate = sample_rate
        self.channels = channels
        self.sample_width = 2

    def get_format_description(self) -> str:
        layout = "mono" if self.channels == 1 else f"{self.channels}-channel"
        return f"PCM {self.sample_width * 8}-bit {layout} {self.sample_rate}Hz"

    def to_wav(self, audio_data: bytes) -> bytes:
        """Convert raw PCM bytes to a WAV file image."""
        frame_bytes = self.sample_width * self.channels
        if len(audio_data) % frame_bytes:
            raise EncodingError(
                f"PCM data length {len(audio_data)} is not a multiple of {frame_bytes} bytes"
            )
        output = io.BytesIO()
        try:
            with wave.open(output, 'wb') as wf:
                wf.setnchannels(self.channels)
                wf.setsampwidth(self.sample_width)
                wf.setframerate(self.sample_rate)
                wf.writeframes(audio_data)
        except wave.Error as e:
            raise EncodingError(f"Failed to write WAV container: {e}") from e
        return output.getvalue()

    def encode(self, audio_data: bytes) -> TranscriptionRequest:
        """Build a transcription request; empty audio yields an empty payload."""
        if not audio_data:
            return TranscriptionRequest(
                payload="",
                format_descriptor=self.get_format_description(),
                mime_type=self.mime_type,
            )

        payload = base64.b64encode(self.to_wav(audio_data)).decode('ascii')
        logger.debug(f"Encoded {len(audio_data)} bytes of PCM as {len(payload)} base64 chars")
        return TranscriptionRequest(
            payload=payload,
            format_descriptor=self.get_format_description(),
            mime_type=self.mime_type,
            audio_bytes=len(audio_data),
        )
