"""Audio-reactive control engine for particle visualizers."""

from sonosphere.config import VisualizerSettings
from sonosphere.core.analyzer import BandAggregator, VolumeEstimator
from sonosphere.core.particles import ParticleLifecycleEngine
from sonosphere.core.polisher import ParameterSmoother
from sonosphere.core.sampler import UNAVAILABLE, SignalSampler
from sonosphere.driver import ControlFrame, FrameDriver
from sonosphere.io.exporter import ControlFrameExporter
from sonosphere.io.presets import PresetStore
from sonosphere.pipeline import OfflinePipeline

__version__ = "0.1.0"
__all__ = [
    "UNAVAILABLE",
    "SignalSampler",
    "BandAggregator",
    "VolumeEstimator",
    "ParameterSmoother",
    "ParticleLifecycleEngine",
    "FrameDriver",
    "ControlFrame",
    "VisualizerSettings",
    "PresetStore",
    "ControlFrameExporter",
    "OfflinePipeline",
]
