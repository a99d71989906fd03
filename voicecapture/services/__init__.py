"""Services layer for capture sessions."""

from .capture_controller import CaptureController
from .publisher import CaptureEventPublisher, CaptureObserver

__all__ = [
    "CaptureController",
    "CaptureEventPublisher",
    "CaptureObserver",
]
