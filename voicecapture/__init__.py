"""voicecapture - voice-activated speech capture with remote transcription."""

__version__ = "0.1.0"
