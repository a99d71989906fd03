"""Exception hierarchy for capture sessions and transcription."""


class VoiceCaptureError(Exception):
    """Base class for all voicecapture errors."""


class MicrophonePermissionError(VoiceCaptureError, PermissionError):
    """Microphone access has not been granted."""


class DeviceError(VoiceCaptureError):
    """The audio capture device could not be opened."""


class ReadError(VoiceCaptureError):
    """A read from an open capture device failed."""


class EncodingError(VoiceCaptureError):
    """Processed audio could not be encoded for transport."""


class TranscriptionError(VoiceCaptureError):
    """Base class for failures talking to the remote transcription service.

    ``label`` is the prefix used when the failure is reported to the caller
    as a failed TranscriptionResult.
    """
    label = "Transcription error"

    def describe(self) -> str:
        return f"{self.label}: {self}"


class NetworkError(TranscriptionError):
    """Connection failure, timeout or non-2xx HTTP status."""
    label = "Network error"


class MalformedResponseError(TranscriptionError):
    """Response body was not the JSON structure we expect."""
    label = "Invalid response format"


class MissingCredentialsError(TranscriptionError):
    """No API key is available for the transcription service."""
    label = "Missing credentials"
