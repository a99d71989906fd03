"""Energy-based voice activity detection."""

import math
import logging
from typing import Optional

from ..models.events import VoiceActivityState, VoiceActivityEvent

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 1000  # RMS on a 0-32767 scale
DEFAULT_SILENCE_TIMEOUT_MS = 5000
DEFAULT_FRAME_DURATION_MS = 64.0  # 1024 samples at 16kHz


class VoiceActivityStateMachine:
    """Classifies a stream of audio levels into utterances.

    State transitions, evaluated once per level:

    - IDLE -> SPEAKING: level > threshold (after ``min_speech_frames``
      consecutive loud frames, 1 by default). Emits SPEECH_STARTED.
    - SPEAKING -> TRAILING_SILENCE: level <= threshold. The silence timer
      starts with this frame's duration.
    - TRAILING_SILENCE -> SPEAKING: level > threshold before the timeout.
      Same utterance, no event.
    - TRAILING_SILENCE -> IDLE: accumulated silence >= silence_timeout_ms.
      Emits UTTERANCE_FINISHED.

    Silence is measured in audio time (the sum of frame durations), not wall
    clock time. Threshold and timeout may be changed from any thread; each
    evaluation reads them once, so a change applies from the next frame on.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        silence_timeout_ms: float = DEFAULT_SILENCE_TIMEOUT_MS,
        min_speech_frames: int = 1,
        frame_duration_ms: float = DEFAULT_FRAME_DURATION_MS,
    ):
        if min_speech_frames < 1:
            raise ValueError("min_speech_frames must be at least 1")
        if frame_duration_ms <= 0:
            raise ValueError("frame duration must be positive")
        self._threshold = threshold
        self._silence_timeout_ms = silence_timeout_ms
        self._min_speech_frames = min_speech_frames
        self.frame_duration_ms = frame_duration_ms

        self.state = VoiceActivityState.IDLE
        self.silence_elapsed_ms = 0.0
        self.speech_elapsed_ms = 0.0
        self.utterance_count = 0
        self._consecutive_loud = 0

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def silence_timeout_ms(self) -> float:
        return self._silence_timeout_ms

    def set_threshold(self, threshold: float) -> None:
        if threshold < 0:
            raise ValueError("threshold must be non-negative")
        self._threshold = threshold
        logger.debug(f"Speech detection threshold set to: {threshold}")

    def set_silence_timeout_ms(self, timeout_ms: float) -> None:
        if timeout_ms < 0:
            raise ValueError("silence timeout must be non-negative")
        self._silence_timeout_ms = timeout_ms
        logger.debug(f"Silence timeout set to: {timeout_ms}ms")

    def silence_frames_tolerance(self, frame_duration_ms: float) -> int:
        """Number of silent frames of the given duration that end an utterance."""
        if frame_duration_ms <= 0:
            raise ValueError("frame duration must be positive")
        return max(1, math.ceil(self._silence_timeout_ms / frame_duration_ms))

    def process(self, level: float,
                frame_duration_ms: Optional[float] = None) -> Optional[VoiceActivityEvent]:
        """Evaluate one audio level and return the event it triggers, if any.

        Frames without an explicit duration count as ``self.frame_duration_ms``.
        """
        if frame_duration_ms is None:
            frame_duration_ms = self.frame_duration_ms
        threshold = self._threshold
        timeout_ms = self._silence_timeout_ms
        loud = level > threshold

        if self.state is VoiceActivityState.IDLE:
            if not loud:
                self._consecutive_loud = 0
                return None
            self._consecutive_loud += 1
            if self._consecutive_loud < self._min_speech_frames:
                return None
            self._consecutive_loud = 0
            self.state = VoiceActivityState.SPEAKING
            self.silence_elapsed_ms = 0.0
            self.speech_elapsed_ms = frame_duration_ms
            logger.debug(f"Speech started (level={level:.0f}, threshold={threshold})")
            return VoiceActivityEvent.SPEECH_STARTED

        self.speech_elapsed_ms += frame_duration_ms

        if loud:
            if self.state is VoiceActivityState.TRAILING_SILENCE:
                logger.debug(f"Speech resumed after {self.silence_elapsed_ms:.0f}ms of silence")
                self.state = VoiceActivityState.SPEAKING
            self.silence_elapsed_ms = 0.0
            return None

        if self.state is VoiceActivityState.SPEAKING:
            self.state = VoiceActivityState.TRAILING_SILENCE
            self.silence_elapsed_ms = frame_duration_ms
        else:
            self.silence_elapsed_ms += frame_duration_ms

        if self.silence_elapsed_ms >= timeout_ms:
            self.utterance_count += 1
            logger.debug(f"Utterance #{self.utterance_count} finished: "
                         f"{self.speech_elapsed_ms:.0f}ms total, "
                         f"{self.silence_elapsed_ms:.0f}ms trailing silence")
            self.state = VoiceActivityState.IDLE
            self.silence_elapsed_ms = 0.0
            return VoiceActivityEvent.UTTERANCE_FINISHED
        return None

    def reset(self) -> None:
        """Return to IDLE without emitting an event."""
        self.state = VoiceActivityState.IDLE
        self.silence_elapsed_ms = 0.0
        self.speech_elapsed_ms = 0.0
        self._consecutive_loud = 0
