"""State and event models for capture sessions."""

from enum import Enum


class VoiceActivityState(Enum):
    """Classification of the live audio stream."""
    IDLE = "idle"
    SPEAKING = "speaking"
    TRAILING_SILENCE = "trailing_silence"


class VoiceActivityEvent(Enum):
    """Side effects emitted by the voice activity state machine."""
    SPEECH_STARTED = "speech_started"
    UTTERANCE_FINISHED = "utterance_finished"


class SessionState(Enum):
    """Lifecycle of a CaptureController."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
