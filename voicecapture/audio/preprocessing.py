"""Preprocessing applied to a finished utterance before it is transmitted."""

import logging
from typing import List, Optional

import numpy as np

from ..config import PreprocessingSettings

logger = logging.getLogger(__name__)

PCM_SCALE = 32768.0


def pcm16_to_float(audio_data: bytes) -> np.ndarray:
    """Convert 16-bit little-endian PCM to float samples in [-1.0, 1.0)."""
    usable = len(audio_data) - (len(audio_data) % 2)
    return np.frombuffer(audio_data[:usable], dtype='<i2').astype(np.float64) / PCM_SCALE


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """Convert float samples back to 16-bit little-endian PCM, clipping out-of-range values."""
    scaled = np.clip(np.round(samples * PCM_SCALE), -32768, 32767)
    return scaled.astype('<i2').tobytes()


class PreprocessingStage:
    """One pure transform of float samples. Subclasses implement ``apply``."""

    name = "stage"

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def apply(self, samples: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def process(self, audio_data: bytes) -> bytes:
        """Run this stage alone on PCM bytes."""
        if not audio_data:
            return b''
        return float_to_pcm16(self.apply(pcm16_to_float(audio_data)))


class NoiseGate(PreprocessingStage):
    """Zero out samples whose absolute amplitude is below ``threshold``."""

    name = "noise_gate"

    def __init__(self, threshold: float = 0.01, enabled: bool = True):
        super().__init__(enabled)
        self.threshold = threshold

    def apply(self, samples: np.ndarray) -> np.ndarray:
        return np.where(np.abs(samples) < self.threshold, 0.0, samples)


class SilenceTrimmer(PreprocessingStage):
    """Drop windows whose RMS energy does not exceed ``threshold``.

    Windows of ``window_size`` samples start every ``hop_size`` samples; the
    final windows may be shorter. A sample survives if it belongs to at least
    one window above the threshold, and survivors are concatenated in order,
    so the output is never longer than the input.
    """

    name = "silence_trim"

    def __init__(self, threshold: float = 0.02, window_size: int = 1024,
                 hop_size: int = 512, enabled: bool = True):
        super().__init__(enabled)
        if window_size <= 0 or hop_size <= 0:
            raise ValueError("window_size and hop_size must be positive")
        self.threshold = threshold
        self.window_size = window_size
        self.hop_size = hop_size

    def apply(self, samples: np.ndarray) -> np.ndarray:
        if samples.size == 0:
            return samples
        keep = np.zeros(samples.size, dtype=bool)
        for start in range(0, samples.size, self.hop_size):
            window = samples[start:start + self.window_size]
            energy = np.sqrt(np.mean(window * window))
            if energy > self.threshold:
                keep[start:start + self.window_size] = True
        return samples[keep]


class PeakNormalizer(PreprocessingStage):
    """Scale samples so the peak absolute amplitude equals ``target_level``."""

    name = "normalize"

    def __init__(self, target_level: float = 0.8, enabled: bool = True):
        super().__init__(enabled)
        self.target_level = target_level

    def apply(self, samples: np.ndarray) -> np.ndarray:
        if samples.size == 0:
            return samples
        peak = float(np.max(np.abs(samples)))
        if peak == 0.0:
            return samples
        return samples * (self.target_level / peak)


class AudioPreprocessingPipeline:
    """Noise gate, silence trim and peak normalization, in that fixed order."""

    def __init__(self, settings: Optional[PreprocessingSettings] = None):
        settings = settings or PreprocessingSettings()
        self.noise_gate = NoiseGate(settings.noise_threshold, enabled=settings.noise_gate)
        self.silence_trimmer = SilenceTrimmer(settings.silence_threshold, enabled=settings.silence_trim)
        self.normalizer = PeakNormalizer(settings.target_level, enabled=settings.normalize)

    @property
    def stages(self) -> List[PreprocessingStage]:
        return [self.noise_gate, self.silence_trimmer, self.normalizer]

    def process(self, audio_data: bytes) -> bytes:
        """Run every enabled stage over ``audio_data`` and return PCM bytes."""
        enabled = [stage for stage in self.stages if stage.enabled]
        if not audio_data or not enabled:
            return audio_data

        samples = pcm16_to_float(audio_data)
        for stage in enabled:
            samples = stage.apply(samples)
            if samples.size == 0:
                break

        processed = float_to_pcm16(samples)
        logger.debug(f"Preprocessed utterance: {len(audio_data)} -> {len(processed)} bytes "
                     f"({', '.join(stage.name for stage in enabled)})")
        return processed
