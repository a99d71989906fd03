"""Audio capture, detection and processing module."""

from .source import AudioSource, PyAudioSource
from .permissions import PermissionProvider, StaticPermission, DevicePermissionChecker
from .buffer import RollingAudioBuffer
from .energy import EnergyMeter
from .vad import VoiceActivityStateMachine
from .preprocessing import AudioPreprocessingPipeline, NoiseGate, SilenceTrimmer, PeakNormalizer
from .encoding import AudioEncoder

__all__ = [
    'AudioSource',
    'PyAudioSource',
    'PermissionProvider',
    'StaticPermission',
    'DevicePermissionChecker',
    'RollingAudioBuffer',
    'EnergyMeter',
    'VoiceActivityStateMachine',
    'AudioPreprocessingPipeline',
    'NoiseGate',
    'SilenceTrimmer',
    'PeakNormalizer',
    'AudioEncoder',
]
