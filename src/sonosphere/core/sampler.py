"""
Per-tick snapshot of the audio graph's analysis buffers.
"""

from dataclasses import dataclass

import numpy as np


class _Unavailable:
    """Sentinel type for ticks where the audio graph is not running."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNAVAILABLE"


UNAVAILABLE = _Unavailable()


@dataclass(frozen=True)
class AudioFrame:
    """
    One analyser snapshot.

    Both arrays come from the same analysis window and are read-only.
    """

    frequency_bins: np.ndarray  # uint8, ascending frequency
    waveform: np.ndarray  # uint8, centered at 128
    sample_rate: float
    bin_count: int = -1

    def __post_init__(self):
        bins = np.array(self.frequency_bins, dtype=np.uint8)
        wave = np.array(self.waveform, dtype=np.uint8)
        bins.setflags(write=False)
        wave.setflags(write=False)

        object.__setattr__(self, "frequency_bins", bins)
        object.__setattr__(self, "waveform", wave)
        if self.bin_count < 0:
            object.__setattr__(self, "bin_count", len(bins))
        elif self.bin_count != len(bins):
            raise ValueError(
                f"bin_count {self.bin_count} does not match {len(bins)} frequency bins"
            )

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2


class SignalSampler:
    """
    Pulls one AudioFrame per tick from an audio graph.

    The graph is any object exposing ``is_running``, ``sample_rate``,
    ``bin_count`` and ``read_analysis()``; see sonosphere.sources.
    """

    def __init__(self, graph=None):
        self.graph = graph

    def sample(self):
        """
        Snapshot the graph's current analysis window.

        Returns:
            AudioFrame, or UNAVAILABLE when there is no running graph.
        """
        graph = self.graph
        if graph is None or not graph.is_running:
            return UNAVAILABLE

        frequency_bins, waveform = graph.read_analysis()
        return AudioFrame(
            frequency_bins=frequency_bins,
            waveform=waveform,
            sample_rate=graph.sample_rate,
            bin_count=graph.bin_count,
        )
