"""Main application entry point for voicecapture."""

import sys
import time
import argparse
import logging
from pathlib import Path
from typing import Optional

from .audio.permissions import DevicePermissionChecker
from .audio.source import PyAudioSource
from .config import VoiceCaptureConfig
from .errors import VoiceCaptureError
from .services.capture_controller import CaptureController
from .transcription.gemini_backend import GeminiTranscriptionBackend
from .ui.console_observer import ConsoleObserver

logger = logging.getLogger(__name__)


class Server:
    """Runs one capture session from the command line."""

    def __init__(self, config_path: Optional[str], log_level: Optional[str] = None):
        self.config = VoiceCaptureConfig(config_path)
        # Command line overrides config
        setup_logging(self.config, log_level or self.config.get('logging.level', 'INFO'))
        self.controller: Optional[CaptureController] = None
        self.observer: Optional[ConsoleObserver] = None

    def init(self, threshold: Optional[float] = None,
             silence_timeout_ms: Optional[int] = None) -> None:
        logger.info("Initializing capture session...")
        settings = self.config.get_detection_settings()
        if threshold is not None:
            settings.threshold = threshold
        if silence_timeout_ms is not None:
            settings.silence_timeout_ms = silence_timeout_ms

        sample_rate = self.config.get('audio.sample_rate', 16000)
        chunk_size = self.config.get('audio.chunk_size', 1024)
        channels = self.config.get('audio.channels', 1)
        logger.info(f"Audio settings: {sample_rate}Hz, {chunk_size} samples/chunk, {channels} channels")
        logger.info(f"Detection: threshold={settings.threshold}, "
                    f"silence_timeout={settings.silence_timeout_ms}ms")

        source = PyAudioSource(
            sample_rate=sample_rate,
            chunk_size=chunk_size,
            channels=channels,
            device_index=self.config.get('audio.device_index'),
        )
        backend = GeminiTranscriptionBackend(
            credentials=self.config.get_credentials(),
            model=self.config.get('gemini.model', 'gemini-2.5-flash'),
            endpoint=self.config.get('gemini.endpoint'),
            timeout_seconds=float(self.config.get('gemini.timeout_seconds', 90)),
        )
        self.controller = CaptureController(
            source=source,
            backend=backend,
            permissions=DevicePermissionChecker(),
            settings=settings,
            preprocessing=self.config.get_preprocessing_settings(),
        )
        self.observer = ConsoleObserver()
        self.controller.register_observer(self.observer)
        self.observer.show_banner(self.controller.get_transcription_info())

    def run(self, duration: Optional[int]) -> None:
        try:
            self.controller.start()
            deadline = time.time() + duration if duration else None
            while self.controller.is_running:
                if deadline is not None and time.time() >= deadline:
                    break
                time.sleep(0.2)
        finally:
            self.cleanup()

    def cleanup(self) -> None:
        if self.controller is None:
            return
        self.controller.stop()
        if self.observer is not None:
            self.observer.show_summary(self.controller.get_audio_info(),
                                       self.controller.get_transcription_info())


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    log_file_path = config.get('logging.file_path', 'logs/voicecapture.log')
    console_output = config.get('logging.console_output', True)

    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("voicecapture starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="voicecapture - voice-activated speech capture and transcription",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: logging.level from config)"
    )

    parser.add_argument(
        "--duration",
        type=int,
        help="Stop after this many seconds (default: run until Ctrl+C)"
    )

    parser.add_argument(
        "--threshold",
        type=float,
        help="Speech detection threshold, RMS on a 0-32767 scale (overrides config)"
    )

    parser.add_argument(
        "--silence-timeout-ms",
        type=int,
        help="Trailing silence that ends an utterance, in milliseconds (overrides config)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="voicecapture v0.1.0"
    )
    return parser


def main() -> None:
    """Main entry point for voicecapture."""
    args = build_parser().parse_args()

    try:
        server = Server(args.config, args.log_level)
        server.init(threshold=args.threshold, silence_timeout_ms=args.silence_timeout_ms)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        server.run(args.duration)
    except KeyboardInterrupt:
        # run() has already cleaned up
        print("\nGoodbye!")
    except VoiceCaptureError as e:
        logger.error(f"Application error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
