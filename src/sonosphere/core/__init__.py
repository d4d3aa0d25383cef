"""Core per-tick signal processing modules."""

from sonosphere.core.analyzer import BandAggregator, VolumeEstimator
from sonosphere.core.particles import ParticleLifecycleEngine
from sonosphere.core.polisher import ParameterSmoother
from sonosphere.core.sampler import SignalSampler

__all__ = [
    "SignalSampler",
    "BandAggregator",
    "VolumeEstimator",
    "ParameterSmoother",
    "ParticleLifecycleEngine",
]
