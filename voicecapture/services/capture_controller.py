"""Capture session controller: microphone loop, voice activity and transcription."""

import time
import uuid
import logging
import threading
from typing import Optional

from ..audio.buffer import RollingAudioBuffer
from ..audio.encoding import AudioEncoder
from ..audio.energy import EnergyMeter
from ..audio.permissions import PermissionProvider
from ..audio.preprocessing import AudioPreprocessingPipeline
from ..audio.source import AudioSource
from ..audio.vad import VoiceActivityStateMachine
from ..config import DetectionSettings, PreprocessingSettings
from ..errors import DeviceError, MicrophonePermissionError, ReadError
from ..models.audio import AudioStats
from ..models.events import SessionState, VoiceActivityEvent, VoiceActivityState
from ..models.status import CaptureStatus
from ..models.transcription import TranscriptionResult
from ..transcription.base import AbstractTranscriptionBackend
from ..transcription.orchestrator import TranscriptionOrchestrator
from . import publisher as topics
from .publisher import CaptureEventPublisher, CaptureObserver

logger = logging.getLogger(__name__)

LISTENING = "Listening..."
PROCESSING = "Processing speech..."
NO_SPEECH = "No speech recognized"


class CaptureController:
    """Owns one capture session and wires its components together.

    The capture loop runs on its own thread and only reads, measures,
    classifies and buffers frames. Finished utterances are handed to the
    transcription orchestrator, whose job drains and preprocesses the buffer
    on the transcription worker thread. Observers receive events through a
    CaptureEventPublisher under the topic prefix ``capture.<session_id>``.
    """

    def __init__(self,
                 source: AudioSource,
                 backend: AbstractTranscriptionBackend,
                 permissions: PermissionProvider,
                 settings: Optional[DetectionSettings] = None,
                 preprocessing: Optional[PreprocessingSettings] = None,
                 session_id: Optional[str] = None,
                 stop_timeout: float = 2.0):
        """Initialize a capture session.

        Args:
            source: Microphone source (opened on start, closed on stop)
            backend: Remote transcription backend
            permissions: Answers whether the microphone may be used
            settings: Detection and buffering settings
            preprocessing: Preprocessing toggles and thresholds
            session_id: Topic-safe identifier; generated when omitted
            stop_timeout: How long stop() waits for each worker thread
        """
        self.source = source
        self.backend = backend
        self.permissions = permissions
        self.settings = settings or DetectionSettings()
        self.session_id = session_id or f"session_{uuid.uuid4().hex[:12]}"
        self.stop_timeout = stop_timeout

        self.buffer = RollingAudioBuffer(
            duration_seconds=self.settings.max_buffered_seconds,
            sample_rate=source.sample_rate,
            channels=source.channels,
        )
        self.energy_meter = EnergyMeter()
        self.vad = VoiceActivityStateMachine(
            threshold=self.settings.threshold,
            silence_timeout_ms=self.settings.silence_timeout_ms,
            min_speech_frames=self.settings.min_speech_frames,
        )
        self.pipeline = AudioPreprocessingPipeline(preprocessing)
        self.encoder = AudioEncoder(sample_rate=source.sample_rate, channels=source.channels)
        self.orchestrator = TranscriptionOrchestrator(
            backend=backend,
            encoder=self.encoder,
            result_callback=self._on_transcription_result,
            name=f"{self.session_id}_transcription",
        )
        self.publisher = CaptureEventPublisher(f"capture.{self.session_id}")

        self._state = SessionState.STOPPED
        self._state_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._capture_thread: Optional[threading.Thread] = None
        self._observer: Optional[CaptureObserver] = None

        # Status, written by the capture and transcription threads
        self._status_lock = threading.Lock()
        self._voice_state = VoiceActivityState.IDLE
        self._audio_level = 0.0
        self._peak_level = 0.0
        self._recognized_text = ""
        self._last_result: Optional[TranscriptionResult] = None
        self.total_chunks = 0
        self.read_errors = 0
        self.captured_ms = 0.0
        self.started_at: Optional[float] = None

        logger.info(f"CaptureController created for {self.session_id}")

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is SessionState.RUNNING

    def register_observer(self, observer: CaptureObserver) -> None:
        """Attach the session's observer. Allowed once per session."""
        if self._observer is not None:
            raise RuntimeError(f"An observer is already registered for {self.session_id}")
        self._observer = observer
        observer.attach(self.publisher)
        logger.debug(f"Observer {type(observer).__name__} registered for {self.session_id}")

    def start(self) -> None:
        """Open the microphone and start the capture loop.

        Raises:
            MicrophonePermissionError: if microphone access is denied
            DeviceError: if the device cannot be opened
        """
        with self._state_lock:
            if self._state is not SessionState.STOPPED:
                logger.warning(f"Cannot start {self.session_id}: session is {self._state.value}")
                return
            self.publisher.start()

            if not self.permissions.has_microphone_permission():
                message = "Microphone permission not granted"
                logger.error(message)
                self.publisher.publish(topics.PERMISSION_ERROR, message=message)
                self.publisher.shutdown(self.stop_timeout)
                raise MicrophonePermissionError(message)

            self._state = SessionState.STARTING
            try:
                self.source.open()
            except Exception as e:
                logger.error(f"Failed to open audio device: {e}")
                self._state = SessionState.STOPPED
                self.publisher.publish(topics.ERROR, message=str(e))
                self.publisher.shutdown(self.stop_timeout)
                if isinstance(e, DeviceError):
                    raise
                raise DeviceError(f"Failed to open audio device: {e}") from e

            self._reset_session()
            self.orchestrator.start()
            self._stop_event.clear()
            self._state = SessionState.RUNNING
            self._capture_thread = threading.Thread(target=self._capture_loop, daemon=True)
            self._capture_thread.name = f"capture_{self.session_id}"
            self.publisher.publish(topics.RECORDING_STARTED)
            self._capture_thread.start()

        logger.info(f"Recording started for {self.session_id}")

    def _reset_session(self) -> None:
        self.buffer.clear()
        self.vad.reset()
        with self._status_lock:
            self._voice_state = VoiceActivityState.IDLE
            self._audio_level = 0.0
            self._peak_level = 0.0
            self._recognized_text = ""
            self._last_result = None
            self.total_chunks = 0
            self.read_errors = 0
            self.captured_ms = 0.0
            self.started_at = time.time()

    def stop(self) -> None:
        """Stop capturing. Safe to call repeatedly and from any thread."""
        with self._state_lock:
            if self._state in (SessionState.STOPPED, SessionState.STOPPING):
                return
            self._state = SessionState.STOPPING
            thread = self._capture_thread
            self._capture_thread = None

        logger.info(f"Stopping recording for {self.session_id}...")
        self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(self.stop_timeout)
            if thread.is_alive():
                logger.warning(f"Capture thread {thread.name} did not terminate cleanly.")

        self.orchestrator.shutdown(self.stop_timeout)
        self.source.close()

        with self._state_lock:
            self._state = SessionState.STOPPED
        self.publisher.publish(topics.RECORDING_STOPPED)
        self.publisher.shutdown(self.stop_timeout)
        logger.info(f"Recording stopped for {self.session_id}")

    def _capture_loop(self) -> None:
        """Capture thread body: one frame at a time until stopped."""
        consecutive_errors = 0
        max_errors = self.settings.max_consecutive_read_errors

        while not self._stop_event.is_set():
            try:
                frame = self.source.read_frame()
            except ReadError as e:
                consecutive_errors += 1
                with self._status_lock:
                    self.read_errors += 1
                logger.warning(f"Audio read error ({consecutive_errors}/{max_errors}): {e}")
                if consecutive_errors >= max_errors:
                    self._fail(f"Audio capture failed after {consecutive_errors} consecutive read errors: {e}")
                    return
                continue

            consecutive_errors = 0
            try:
                self._process_frame(frame)
            except Exception as e:
                logger.error(f"Unexpected error in capture loop: {e}", exc_info=True)
                self._fail(f"Unexpected capture error: {e}")
                return

        logger.debug(f"Capture thread {threading.current_thread().name} exiting.")

    def _fail(self, message: str) -> None:
        """Publish a fatal error and tear the session down from the capture thread."""
        logger.error(message)
        self.publisher.publish(topics.ERROR, message=message)
        self.stop()

    def _process_frame(self, frame: bytes) -> None:
        level = self.energy_meter.measure(frame)
        peak = self.energy_meter.peak(frame)
        frame_ms = self.source.frame_duration_ms(len(frame))

        self.buffer.append(frame)
        event = self.vad.process(level, frame_ms)
        voice_state = self.vad.state

        with self._status_lock:
            self.total_chunks += 1
            self.captured_ms += frame_ms
            self._audio_level = level
            self._peak_level = peak
            state_changed = voice_state is not self._voice_state
            self._voice_state = voice_state

        self.publisher.publish_audio_level(level)
        if state_changed:
            self.publisher.publish(topics.VOICE_STATE, state=voice_state)

        if event is VoiceActivityEvent.SPEECH_STARTED:
            self._set_recognized_text(LISTENING)
        elif event is VoiceActivityEvent.UTTERANCE_FINISHED and not self._stop_event.is_set():
            self._set_recognized_text(PROCESSING)
            job = self.orchestrator.submit_pending(self._prepare_utterance)
            logger.info(f"Utterance finished, submitted transcription job #{job.job_id}")

    def _prepare_utterance(self) -> bytes:
        """Drain the buffer and preprocess it. Runs on the transcription worker."""
        return self.pipeline.process(self.buffer.drain_all())

    def _set_recognized_text(self, text: str) -> None:
        with self._status_lock:
            if text == self._recognized_text:
                return
            self._recognized_text = text
        self.publisher.publish(topics.RECOGNIZED_TEXT, text=text)

    def _on_transcription_result(self, result: TranscriptionResult) -> None:
        with self._status_lock:
            self._last_result = result
        self.publisher.publish(topics.TRANSCRIPTION_COMPLETED, result=result)
        if result.has_text:
            self._set_recognized_text(result.text)
        elif result.success:
            self._set_recognized_text(NO_SPEECH)
        else:
            self._set_recognized_text(f"Transcription failed: {result.error}")

    def update_settings(self, threshold: Optional[float] = None,
                        silence_timeout_ms: Optional[float] = None) -> None:
        """Change detection settings; applied from the next evaluated frame."""
        if threshold is not None:
            self.vad.set_threshold(threshold)
            self.settings.threshold = threshold
        if silence_timeout_ms is not None:
            self.vad.set_silence_timeout_ms(silence_timeout_ms)
            self.settings.silence_timeout_ms = silence_timeout_ms
        logger.info(f"Detection settings updated: threshold={self.vad.threshold}, "
                    f"silence_timeout_ms={self.vad.silence_timeout_ms}")

    def cancel_current_transcription(self) -> bool:
        """Cancel the in-flight transcription; its result is never delivered."""
        return self.orchestrator.cancel_current()

    def get_status(self) -> CaptureStatus:
        in_flight = self.orchestrator.in_flight
        state = self.state
        with self._status_lock:
            return CaptureStatus(
                session_id=self.session_id,
                state=state,
                voice_state=self._voice_state,
                audio_level=self._audio_level,
                peak_level=self._peak_level,
                recognized_text=self._recognized_text,
                last_result=self._last_result,
                buffered_bytes=len(self.buffer),
                total_chunks=self.total_chunks,
                read_errors=self.read_errors,
                transcription_in_flight=in_flight,
            )

    def get_audio_info(self) -> AudioStats:
        """Capture statistics for the current (or last) session."""
        is_recording = self.is_running
        with self._status_lock:
            return AudioStats(
                is_recording=is_recording,
                duration_seconds=self.captured_ms / 1000.0,
                buffered_bytes=len(self.buffer),
                sample_rate=self.source.sample_rate,
                chunk_size=self.source.chunk_size,
                total_chunks=self.total_chunks,
                read_errors=self.read_errors,
            )

    def get_transcription_info(self) -> str:
        """Get display information about the transcription backend."""
        stats = self.orchestrator.get_stats()
        readiness = "ready" if self.backend.is_ready() else "no credentials"
        return (f"{self.backend.method_name} ({readiness}): "
                f"{stats['delivered']} transcribed, {stats['failed']} failed, "
                f"{stats['cancelled']} cancelled")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        self.stop()
