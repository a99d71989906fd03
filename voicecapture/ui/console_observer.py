"""Rich console output for a capture session."""

import logging

from rich.console import Console
from rich.table import Table

from ..models.audio import AudioStats
from ..models.events import VoiceActivityState
from ..models.transcription import TranscriptionResult
from ..services.publisher import CaptureObserver

logger = logging.getLogger(__name__)

VOICE_STATE_STYLES = {
    VoiceActivityState.IDLE: ("idle", "dim"),
    VoiceActivityState.SPEAKING: ("speaking", "bold green"),
    VoiceActivityState.TRAILING_SILENCE: ("waiting for silence", "yellow"),
}


class ConsoleObserver(CaptureObserver):
    """Prints session events as they arrive. Audio levels are not printed."""

    def __init__(self, console: Console = None):
        self.console = console or Console()
        self.transcripts = []

    def show_banner(self, transcription_info: str) -> None:
        self.console.print("voicecapture", style="bold blue")
        self.console.print(f"Transcription: {transcription_info}", style="blue")
        self.console.print("Press Ctrl+C to stop", style="yellow")

    def on_recording_started(self) -> None:
        self.console.print("Recording started", style="bold red")

    def on_recording_stopped(self) -> None:
        self.console.print("Recording stopped", style="bold blue")

    def on_permission_error(self, message: str) -> None:
        self.console.print(f"Permission error: {message}", style="bold red")

    def on_error(self, message: str) -> None:
        self.console.print(f"Error: {message}", style="bold red", markup=False)

    def on_voice_state(self, state: VoiceActivityState) -> None:
        label, style = VOICE_STATE_STYLES[state]
        self.console.print(f"({label})", style=style)

    def on_transcription_completed(self, result: TranscriptionResult) -> None:
        if result.has_text:
            self.transcripts.append(result.text)
            self.console.print(f"> {result.text}", style="bold white", markup=False)
            logger.debug(f"Displayed transcript ({result.processing_time_ms}ms)")
        elif result.success:
            self.console.print("(no speech recognized)", style="dim")
        else:
            self.console.print(f"Transcription failed: {result.error}", style="red", markup=False)

    def show_summary(self, audio: AudioStats, transcription_info: str) -> None:
        table = Table(title="Session summary", show_header=False)
        table.add_column("Item", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Captured", f"{audio.duration_seconds:.1f}s ({audio.total_chunks} chunks)")
        table.add_row("Read errors", str(audio.read_errors))
        table.add_row("Transcription", transcription_info)
        table.add_row("Utterances", str(len(self.transcripts)))
        self.console.print(table)
