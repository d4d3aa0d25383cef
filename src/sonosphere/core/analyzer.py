"""
Feature extraction module for per-tick audio analysis.

Reduces one analyser snapshot to the visual drivers: five named
frequency-band energies and a single loudness scalar.
"""

import math
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from sonosphere.core.sampler import AudioFrame

# Largest value an analyser byte can hold.
MAX_MAGNITUDE = 255.0

# Byte value of a zero-amplitude waveform sample.
WAVEFORM_CENTER = 128.0


@dataclass(frozen=True)
class BandDefinition:
    """A named frequency range in Hz, low edge inclusive."""

    name: str
    low_hz: float
    high_hz: float


DEFAULT_BANDS: tuple[BandDefinition, ...] = (
    BandDefinition("bass", 20.0, 140.0),
    BandDefinition("low_mid", 140.0, 400.0),
    BandDefinition("mid", 400.0, 2600.0),
    BandDefinition("high_mid", 2600.0, 5200.0),
    BandDefinition("treble", 5200.0, 14000.0),
)

BAND_NAMES: tuple[str, ...] = tuple(band.name for band in DEFAULT_BANDS)


def band_index_range(
    band: BandDefinition,
    sample_rate: float,
    bin_count: int,
) -> tuple[int, int]:
    """
    Map a band's physical frequency range onto analyser bin indices.

    Args:
        band: Band to map.
        sample_rate: Sample rate of the analysed signal in Hz.
        bin_count: Number of frequency bins (half the FFT size).

    Returns:
        (low_index, high_index), both clamped to [0, bin_count - 1].
        low_index may exceed high_index for degenerate bands.
    """
    nyquist = sample_rate / 2
    last = max(bin_count - 1, 0)

    low_index = math.floor(band.low_hz * bin_count / nyquist)
    high_index = math.floor(band.high_hz * bin_count / nyquist)

    low_index = min(max(low_index, 0), last)
    high_index = min(max(high_index, 0), last)
    return low_index, high_index


class BandAggregator:
    """
    Reduces a frame's frequency bins to normalized band energies.

    Stateless: the result depends only on the frame and the band table.
    """

    def __init__(self, bands: Sequence[BandDefinition] = DEFAULT_BANDS):
        """
        Initialize the aggregator.

        Args:
            bands: Band table used when compute_bands() gets no override.
        """
        self.bands = tuple(bands)

    def band_energy(
        self,
        frequency_bins: np.ndarray,
        band: BandDefinition,
        sample_rate: float,
    ) -> float:
        """Mean magnitude of one band in [0.0, 1.0]; 0.0 for degenerate bands."""
        bin_count = len(frequency_bins)
        if bin_count == 0 or sample_rate <= 0:
            return 0.0

        # Inverted ranges and bands lying wholly above Nyquist carry no energy
        if band.high_hz < band.low_hz or band.low_hz >= sample_rate / 2:
            return 0.0

        low_index, high_index = band_index_range(band, sample_rate, bin_count)
        if low_index > high_index:
            return 0.0

        window = frequency_bins[low_index:high_index + 1]
        energy = float(np.mean(window, dtype=np.float64)) / MAX_MAGNITUDE
        return min(max(energy, 0.0), 1.0)

    def compute_bands(
        self,
        frame: AudioFrame,
        bands: Sequence[BandDefinition] | None = None,
    ) -> dict[str, float]:
        """
        Compute the energy of every band for one frame.

        Args:
            frame: Analyser snapshot.
            bands: Optional band table overriding the configured one.

        Returns:
            Mapping from band name to energy in [0.0, 1.0].
        """
        table = self.bands if bands is None else bands
        return {
            band.name: self.band_energy(frame.frequency_bins, band, frame.sample_rate)
            for band in table
        }


class VolumeEstimator:
    """Reduces a byte waveform to a single loudness scalar."""

    def compute_volume(self, waveform: np.ndarray) -> float:
        """
        Mean absolute deviation from the waveform center, normalized.

        Returns:
            Loudness in [0.0, 1.0]; 0.0 for an empty waveform.
        """
        samples = np.asarray(waveform, dtype=np.float64)
        if samples.size == 0:
            return 0.0

        deviation = np.abs(samples - WAVEFORM_CENTER) / WAVEFORM_CENTER
        return min(float(np.mean(deviation)), 1.0)
