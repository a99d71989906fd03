"""Unit tests for the command line parser, logging setup and console observer."""

import logging
from unittest.mock import Mock, patch

import pytest
from rich.console import Console

from voicecapture.config import VoiceCaptureConfig
from voicecapture.main import Server, build_parser, main, setup_logging
from voicecapture.models.audio import AudioStats
from voicecapture.models.events import VoiceActivityState
from voicecapture.models.transcription import TranscriptionResult
from voicecapture.ui.console_observer import ConsoleObserver


@pytest.mark.unit
class TestCommandLine:

    def test_defaults(self):
        args = build_parser().parse_args([])

        assert args.config is None
        assert args.log_level is None
        assert args.duration is None
        assert args.threshold is None

    def test_overrides(self):
        args = build_parser().parse_args([
            "--config", "voicecapture.yaml", "--log-level", "DEBUG", "--duration", "30",
            "--threshold", "750", "--silence-timeout-ms", "2000",
        ])

        assert args.config == "voicecapture.yaml"
        assert args.log_level == "DEBUG"
        assert args.duration == 30
        assert args.threshold == 750.0
        assert args.silence_timeout_ms == 2000

    def test_interrupted_run_cleans_up_once(self):
        server = Server.__new__(Server)
        server.controller = Mock()
        server.controller.is_running = True
        server.observer = Mock()
        server.controller.start.side_effect = KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            server.run(None)

        server.controller.stop.assert_called_once()
        server.observer.show_summary.assert_called_once()

    def test_main_does_not_repeat_cleanup_on_interrupt(self, capsys):
        with patch("voicecapture.main.Server") as server_class, \
                patch("sys.argv", ["voicecapture"]):
            server = server_class.return_value
            server.run.side_effect = KeyboardInterrupt

            main()

        server.run.assert_called_once_with(None)
        server.cleanup.assert_not_called()
        assert "Goodbye" in capsys.readouterr().out

    def test_setup_logging_writes_file(self, tmp_path):
        log_file = tmp_path / "logs" / "voicecapture.log"
        config = VoiceCaptureConfig.from_dict({
            "logging": {"file_path": str(log_file), "console_output": False},
        })
        root_logger = logging.getLogger()
        saved_handlers, saved_level = root_logger.handlers[:], root_logger.level

        try:
            setup_logging(config, "DEBUG")
            logging.getLogger("voicecapture.test").debug("hello log")
            for handler in root_logger.handlers:
                handler.flush()

            assert root_logger.level == logging.DEBUG
            assert len(root_logger.handlers) == 1
            assert "hello log" in log_file.read_text()
        finally:
            for handler in root_logger.handlers:
                handler.close()
            root_logger.handlers[:] = saved_handlers
            root_logger.setLevel(saved_level)


@pytest.mark.unit
class TestConsoleObserver:

    def test_prints_events(self):
        console = Console(record=True, width=120)
        observer = ConsoleObserver(console)

        observer.on_recording_started()
        observer.on_voice_state(VoiceActivityState.SPEAKING)
        observer.on_transcription_completed(TranscriptionResult(success=True, text="turn on the lights"))
        observer.on_transcription_completed(TranscriptionResult.failure("Network error: HTTP 503"))
        observer.on_error("device lost")
        observer.on_recording_stopped()

        output = console.export_text()
        assert "Recording started" in output
        assert "speaking" in output
        assert "turn on the lights" in output
        assert "Transcription failed: Network error: HTTP 503" in output
        assert "Error: device lost" in output
        assert observer.transcripts == ["turn on the lights"]

    def test_summary(self):
        console = Console(record=True, width=120)
        observer = ConsoleObserver(console)
        stats = AudioStats(is_recording=False, duration_seconds=12.5, buffered_bytes=0,
                           sample_rate=16000, chunk_size=1024, total_chunks=195)

        observer.show_summary(stats, "Gemini Direct API (ready)")

        output = console.export_text()
        assert "12.5s" in output
        assert "Gemini Direct API (ready)" in output
