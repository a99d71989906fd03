"""Typed pub/sub event channel for capture sessions.

Each event category has its own pypubsub topic under the session prefix
(``capture.<session_id>.<category>``). Publishing never blocks the caller:
messages are queued and delivered by a dispatcher thread. Audio-level
updates are coalesced so a slow observer only ever sees the latest level;
every other message, including each transcription result, is delivered.
"""

import time
import queue
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from pubsub import pub

from ..models.events import VoiceActivityState
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)

RECORDING_STARTED = "recording_started"
RECORDING_STOPPED = "recording_stopped"
PERMISSION_ERROR = "permission_error"
ERROR = "error"
TRANSCRIPTION_COMPLETED = "transcription_completed"
VOICE_STATE = "voice_state"
AUDIO_LEVEL = "audio_level"
RECOGNIZED_TEXT = "recognized_text"


def _no_args() -> None:
    pass


def _message_arg(message: str) -> None:
    pass


def _result_arg(result: TranscriptionResult) -> None:
    pass


def _state_arg(state: VoiceActivityState) -> None:
    pass


def _level_arg(level: float) -> None:
    pass


def _text_arg(text: str) -> None:
    pass


# Prototype listeners define each topic's message arguments
TOPIC_PROTOTYPES: Dict[str, Callable] = {
    RECORDING_STARTED: _no_args,
    RECORDING_STOPPED: _no_args,
    PERMISSION_ERROR: _message_arg,
    ERROR: _message_arg,
    TRANSCRIPTION_COMPLETED: _result_arg,
    VOICE_STATE: _state_arg,
    AUDIO_LEVEL: _level_arg,
    RECOGNIZED_TEXT: _text_arg,
}

_LEVEL_MARKER = object()


class CaptureEventPublisher:
    """Publishes capture session events using pubsub.pub."""

    def __init__(self, topic_prefix: str):
        """Initialize the publisher and define its topics.

        Args:
            topic_prefix: Dotted pub/sub prefix, e.g. "capture.session_1a2b"
        """
        self.topic_prefix = topic_prefix
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._level_lock = threading.Lock()
        self._pending_level: Optional[float] = None
        self._level_scheduled = False
        self._thread: Optional[threading.Thread] = None
        self.coalesced_levels = 0

        topic_manager = pub.getDefaultTopicMgr()
        for name, prototype in TOPIC_PROTOTYPES.items():
            topic_manager.getOrCreateTopic(self.topic(name), prototype)

        logger.info(f"CaptureEventPublisher initialized with topic prefix: {topic_prefix}")

    def topic(self, name: str) -> str:
        return f"{self.topic_prefix}.{name}"

    def start(self) -> None:
        """Start the dispatcher thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._dispatch_loop, daemon=True)
        self._thread.name = f"dispatcher_{self.topic_prefix}"
        self._thread.start()

    def publish(self, name: str, **message: Any) -> None:
        """Queue a message for topic ``name``."""
        if name not in TOPIC_PROTOTYPES:
            raise ValueError(f"Unknown capture topic: {name}")
        self._queue.put((name, message))

    def publish_audio_level(self, level: float) -> None:
        """Queue an audio level, replacing a level that is still undelivered."""
        with self._level_lock:
            self._pending_level = level
            if self._level_scheduled:
                self.coalesced_levels += 1
                return
            self._level_scheduled = True
        self._queue.put(_LEVEL_MARKER)

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    logger.debug(f"Dispatcher for {self.topic_prefix} received sentinel, exiting.")
                    break
                if item is _LEVEL_MARKER:
                    with self._level_lock:
                        level = self._pending_level
                        self._level_scheduled = False
                    self._send(AUDIO_LEVEL, {"level": level})
                else:
                    name, message = item
                    self._send(name, message)
            finally:
                self._queue.task_done()

    def _send(self, name: str, message: Dict[str, Any]) -> None:
        try:
            pub.sendMessage(self.topic(name), **message)
        except Exception as e:
            logger.error(f"Error in {name} listener: {e}", exc_info=True)

    def flush(self, timeout: float = 2.0) -> bool:
        """Wait until every queued message has been delivered."""
        deadline = time.time() + timeout
        while self._queue.unfinished_tasks:
            if time.time() >= deadline:
                logger.warning(f"{self._queue.unfinished_tasks} capture events still pending")
                return False
            time.sleep(0.01)
        return True

    def shutdown(self, timeout: float = 2.0) -> None:
        """Deliver queued messages, then stop the dispatcher thread."""
        thread, self._thread = self._thread, None
        if thread is None:
            return
        self._queue.put(None)
        if thread is threading.current_thread():
            # Called from a listener; the loop exits after this message
            return
        thread.join(timeout)
        if thread.is_alive():
            logger.warning(f"Dispatcher thread {thread.name} did not terminate cleanly.")


class CaptureObserver:
    """Base class for consumers of capture session events.

    Override the ``on_*`` methods of interest and register the observer with
    ``CaptureController.register_observer``. Methods run on the publisher's
    dispatcher thread.
    """

    def on_recording_started(self) -> None:
        pass

    def on_recording_stopped(self) -> None:
        pass

    def on_permission_error(self, message: str) -> None:
        pass

    def on_error(self, message: str) -> None:
        pass

    def on_transcription_completed(self, result: TranscriptionResult) -> None:
        pass

    def on_voice_state(self, state: VoiceActivityState) -> None:
        pass

    def on_audio_level(self, level: float) -> None:
        pass

    def on_recognized_text(self, text: str) -> None:
        pass

    def _listeners(self) -> List[tuple]:
        return [(name, getattr(self, f"on_{name}")) for name in TOPIC_PROTOTYPES]

    def attach(self, publisher: CaptureEventPublisher) -> None:
        for name, listener in self._listeners():
            pub.subscribe(listener, publisher.topic(name))

    def detach(self, publisher: CaptureEventPublisher) -> None:
        for name, listener in self._listeners():
            pub.unsubscribe(listener, publisher.topic(name))
