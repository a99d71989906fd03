"""Single-slot transcription job orchestration.

The orchestrator owns at most one in-flight transcription job. Submitting a
new job cancels the previous one in the same locked step, and a cancelled job
never reaches the result callback, even when its network call completes.
Jobs run on a dedicated worker thread hosting an asyncio event loop, so the
capture thread never waits on network I/O.
"""

import time
import asyncio
import logging
import threading
import concurrent.futures
from typing import Callable, Dict, Optional

from .base import AbstractTranscriptionBackend
from ..audio.encoding import AudioEncoder
from ..errors import EncodingError
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)

NO_AUDIO_DATA = "no audio data"


class TranscriptionJob:
    """Handle for one submitted transcription."""

    def __init__(self, job_id: int, orchestrator: "TranscriptionOrchestrator"):
        self.job_id = job_id
        self.submitted_at = time.time()
        self.future: Optional[concurrent.futures.Future] = None
        self.cancelled = False
        self.delivered = False
        self._orchestrator = orchestrator

    def cancel(self) -> bool:
        """Cancel this job. Returns False if it was already delivered or cancelled."""
        return self._orchestrator.cancel(self)

    def done(self) -> bool:
        return self.cancelled or self.delivered or (self.future is not None and self.future.done())

    def wait(self, timeout: Optional[float] = None) -> Optional[TranscriptionResult]:
        """Block until the job finishes.

        Returns:
            The delivered result, or None if the job was cancelled

        Raises:
            concurrent.futures.TimeoutError: if the job is still running after ``timeout``
        """
        if self.future is None:
            return None
        try:
            result = self.future.result(timeout)
        except concurrent.futures.CancelledError:
            return None
        return None if self.cancelled else result

    def __repr__(self) -> str:
        status = "cancelled" if self.cancelled else "delivered" if self.delivered else "pending"
        return f"TranscriptionJob(#{self.job_id}, {status})"


class TranscriptionOrchestrator:
    """Runs transcription jobs one at a time on a background event loop."""

    def __init__(self,
                 backend: AbstractTranscriptionBackend,
                 encoder: Optional[AudioEncoder] = None,
                 result_callback: Optional[Callable[[TranscriptionResult], None]] = None,
                 name: str = "transcription"):
        """Initialize transcription orchestrator.

        Args:
            backend: Remote transcription backend
            encoder: Transport encoder (WAV + base64 by default)
            result_callback: Called once per delivered result, on the worker thread
            name: Used for the worker thread name and log messages
        """
        self.backend = backend
        self.encoder = encoder or AudioEncoder()
        self.result_callback = result_callback
        self.name = name

        self._lock = threading.RLock()
        self._current: Optional[TranscriptionJob] = None
        self._job_counter = 0
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None

        self.stats: Dict[str, int] = {
            "submitted": 0,
            "delivered": 0,
            "failed": 0,
            "cancelled": 0,
        }

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._current is not None

    @property
    def current_job(self) -> Optional[TranscriptionJob]:
        with self._lock:
            return self._current

    def start(self) -> None:
        """Start the worker thread and its event loop."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._loop = asyncio.new_event_loop()
            self._thread = threading.Thread(target=self._worker_loop, args=(self._loop,), daemon=True)
            self._thread.name = f"{self.name}_worker"
            self._thread.start()
        logger.info(f"Started {self.name} worker")

    def _worker_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """The worker thread body: run the event loop until shutdown."""
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()
            logger.debug(f"Worker thread {threading.current_thread().name} exiting and closing its event loop.")

    def submit(self, processed_audio: bytes) -> TranscriptionJob:
        """Transcribe already processed audio, replacing any in-flight job."""
        return self.submit_pending(lambda: processed_audio)

    def submit_pending(self, prepare: Callable[[], bytes]) -> TranscriptionJob:
        """Start a job whose audio is produced by ``prepare`` on the worker thread.

        Cancelling the previous job and installing the new one happen under
        one lock acquisition, so callers never observe two jobs in flight.
        """
        with self._lock:
            if not self.is_running:
                self.start()
            if self._current is not None:
                logger.info(f"Cancelling job #{self._current.job_id}, superseded by a new utterance")
                self._cancel_locked(self._current)

            self._job_counter += 1
            job = TranscriptionJob(self._job_counter, self)
            self._current = job
            self.stats["submitted"] += 1
            job.future = asyncio.run_coroutine_threadsafe(self._run_job(job, prepare), self._loop)

        logger.debug(f"Submitted transcription job #{job.job_id}")
        return job

    def cancel(self, job: TranscriptionJob) -> bool:
        with self._lock:
            return self._cancel_locked(job)

    def cancel_current(self) -> bool:
        """Cancel the in-flight job, if any."""
        with self._lock:
            if self._current is None:
                return False
            return self._cancel_locked(self._current)

    def _cancel_locked(self, job: TranscriptionJob) -> bool:
        if job.cancelled or job.delivered:
            return False
        job.cancelled = True
        if job.future is not None:
            job.future.cancel()
        if self._current is job:
            self._current = None
        self.stats["cancelled"] += 1
        logger.debug(f"Cancelled transcription job #{job.job_id}")
        return True

    async def _run_job(self, job: TranscriptionJob, prepare: Callable[[], bytes]) -> TranscriptionResult:
        """Encode, transcribe and deliver one utterance."""
        start_time = time.monotonic()
        method = self.backend.method_name
        try:
            audio = prepare()
            request = self.encoder.encode(audio)
            if not request.payload:
                logger.warning(f"Job #{job.job_id}: no audio data to transcribe")
                result = TranscriptionResult.failure(NO_AUDIO_DATA, method)
            else:
                logger.info(f"Transcribing job #{job.job_id}: {request.audio_bytes} bytes "
                            f"({request.format_descriptor}) via {method}")
                result = await self.backend.transcribe(
                    request.payload, request.format_descriptor, request.mime_type
                )
        except EncodingError as e:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            logger.error(f"Job #{job.job_id}: failed to encode audio: {e}")
            result = TranscriptionResult.failure(f"Encoding error: {e}", method, elapsed_ms)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            logger.error(f"Unhandled exception in transcription job #{job.job_id}: {e}", exc_info=True)
            result = TranscriptionResult.failure(f"Unexpected error: {e}", method, elapsed_ms)

        self._deliver(job, result)
        return result

    def _deliver(self, job: TranscriptionJob, result: TranscriptionResult) -> bool:
        with self._lock:
            if job.cancelled or self._current is not job:
                logger.debug(f"Discarding result of cancelled job #{job.job_id}")
                return False
            self._current = None
            job.delivered = True
            self.stats["delivered" if result.success else "failed"] += 1

            if result.success:
                logger.info(f"Job #{job.job_id}: '{result.text}' ({result.confidence:.0%}) "
                            f"in {result.processing_time_ms}ms")
            else:
                logger.warning(f"Job #{job.job_id} failed: {result.error}")

            # Invoked under the lock so a concurrent submit cannot cancel
            # this job between the check above and delivery.
            if self.result_callback:
                try:
                    self.result_callback(result)
                except Exception as e:
                    logger.error(f"Error in result callback: {e}", exc_info=True)
        return True

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            stats = self.stats.copy()
            stats["in_flight"] = int(self._current is not None)
            return stats

    def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel the in-flight job, close the backend and stop the worker."""
        with self._lock:
            if self._current is not None:
                self._cancel_locked(self._current)
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None

        if loop is None or thread is None:
            return

        logger.info(f"Shutting down {self.name} worker...")
        if thread is threading.current_thread():
            # Called from a result callback on the worker itself
            loop.stop()
            return
        if not loop.is_closed():
            try:
                asyncio.run_coroutine_threadsafe(self.backend.close(), loop).result(timeout)
            except Exception as e:
                logger.warning(f"Error closing transcription backend: {e}")
            try:
                loop.call_soon_threadsafe(loop.stop)
            except RuntimeError:
                logger.debug("Worker loop already closed")

        thread.join(timeout)
        if thread.is_alive():
            logger.warning(f"Worker thread {thread.name} did not terminate cleanly.")
        logger.info(f"{self.name} worker shutdown complete.")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, _exc_type, _exc_val, _exc_tb):
        self.shutdown()
