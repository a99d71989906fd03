"""Console output for capture sessions."""

from .console_observer import ConsoleObserver

__all__ = ["ConsoleObserver"]
