"""Loudness measurement for raw PCM frames."""

import numpy as np

MAX_LEVEL = 32767.0


class EnergyMeter:
    """Root-mean-square level of a 16-bit PCM frame on a 0-32767 scale."""

    def measure(self, frame: bytes) -> float:
        """Return the RMS level of ``frame``.

        A trailing odd byte is ignored; an empty frame measures 0.
        """
        usable = len(frame) - (len(frame) % 2)
        if usable <= 0:
            return 0.0
        samples = np.frombuffer(frame[:usable], dtype='<i2').astype(np.float64)
        rms = float(np.sqrt(np.mean(samples * samples)))
        return min(rms, MAX_LEVEL)

    def peak(self, frame: bytes) -> float:
        """Peak absolute amplitude of ``frame`` normalized to 0.0-1.0."""
        usable = len(frame) - (len(frame) % 2)
        if usable <= 0:
            return 0.0
        samples = np.frombuffer(frame[:usable], dtype='<i2').astype(np.int32)
        return min(float(np.max(np.abs(samples))) / 32768.0, 1.0)
