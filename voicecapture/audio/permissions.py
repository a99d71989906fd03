"""Microphone permission collaborators."""

import logging
from abc import ABC, abstractmethod

import pyaudio

logger = logging.getLogger(__name__)


class PermissionProvider(ABC):
    """Answers whether the process may use the microphone."""

    @abstractmethod
    def has_microphone_permission(self) -> bool:
        pass


class StaticPermission(PermissionProvider):
    """Fixed answer, for embedding applications that check permissions themselves."""

    def __init__(self, granted: bool = True):
        self.granted = granted

    def has_microphone_permission(self) -> bool:
        return self.granted


class DevicePermissionChecker(PermissionProvider):
    """Treats the presence of at least one input device as permission granted.

    Desktop platforms have no permission prompt that PyAudio can query; an
    OS-level denial shows up as no usable input device.
    """

    def has_microphone_permission(self) -> bool:
        try:
            pa = pyaudio.PyAudio()
        except OSError as e:
            logger.debug(f"Microphone not available: {e}")
            return False
        try:
            for index in range(pa.get_device_count()):
                info = pa.get_device_info_by_index(index)
                if info.get("maxInputChannels", 0) > 0:
                    return True
            logger.debug("No input devices found")
            return False
        finally:
            pa.terminate()
