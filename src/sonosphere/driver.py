"""
Per-tick orchestrator.

Runs sampler, band/volume extraction, smoothing and the particle engine
in a fixed order and emits one immutable ControlFrame per tick.
"""

import logging
from dataclasses import dataclass

from sonosphere.config import VisualizerSettings
from sonosphere.core.analyzer import BandAggregator, VolumeEstimator
from sonosphere.core.particles import ParticleAttributes, ParticleLifecycleEngine
from sonosphere.core.polisher import ControlState, ParameterSmoother
from sonosphere.core.sampler import UNAVAILABLE, SignalSampler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ControlFrame:
    """Everything a renderer needs for one tick, read-only."""

    bands: ControlState
    particles: ParticleAttributes
    changed: bool  # Some particle respawned; static buffers need re-upload
    boost: float  # Post-processing (bloom) intensity
    time: float
    sphere_phase: float
    sphere_rotation: tuple[float, float, float]
    signal_present: bool


class FrameDriver:
    """
    Drives the audio-to-visual recurrence one tick at a time.

    Each tick depends only on the previous smoothed state and particle
    pool plus the current sample, so ticks must be called sequentially.
    """

    def __init__(
        self,
        sampler: SignalSampler,
        settings: VisualizerSettings | None = None,
        engine: ParticleLifecycleEngine | None = None,
        aggregator: BandAggregator | None = None,
        estimator: VolumeEstimator | None = None,
        seed: int | None = None,
    ):
        """
        Initialize the driver.

        Args:
            sampler: Source of per-tick audio frames.
            settings: Initial configuration (default: VisualizerSettings()).
            engine: Particle engine (default: built from settings).
            aggregator: Band energy reducer.
            estimator: Volume reducer.
            seed: Random seed for the default particle engine.
        """
        self.sampler = sampler
        self.settings = settings or VisualizerSettings()
        self.aggregator = aggregator or BandAggregator()
        self.estimator = estimator or VolumeEstimator()
        self.engine = engine or ParticleLifecycleEngine(self.settings.particle_config(), seed=seed)

        self.smoother = ParameterSmoother(self.settings.smoothing_rates())
        self.particle_smoother = ParameterSmoother(self.settings.particle_rates())

        self.state = ControlState()
        self.particle_drive = ControlState()
        self.pool = self.engine.create_pool(self.settings.particle_count)

        self.time = 0.0
        self.sphere_phase = 0.0
        self.sphere_rotation = (0.0, 0.0, 0.0)

    def apply_settings(self, settings: VisualizerSettings):
        """
        Switch to a new settings value between ticks.

        The particle pool is recreated only when the capacity changes;
        other particle settings apply from the next respawn.
        """
        previous = self.settings
        self.settings = settings
        self.smoother = ParameterSmoother(settings.smoothing_rates())
        self.particle_smoother = ParameterSmoother(settings.particle_rates())
        self.engine.configure(settings.particle_config())

        if settings.particle_count != previous.particle_count:
            logger.info(
                "Particle count changed %d -> %d, recreating pool",
                previous.particle_count,
                settings.particle_count,
            )
            self.recreate_particles()

    def recreate_particles(self):
        self.pool = self.engine.create_pool(self.settings.particle_count)

    def reset(self):
        """Zero the smoothed state and restart the clocks."""
        self.state = ControlState()
        self.particle_drive = ControlState()
        self.time = 0.0
        self.sphere_phase = 0.0
        self.sphere_rotation = (0.0, 0.0, 0.0)

    def _advance_sphere(self, dt: float, raw_volume: float):
        speed = self.settings.sphere_rotation_speed * dt
        rx, ry, rz = self.sphere_rotation
        self.sphere_rotation = (rx + speed * 0.3, ry + speed * 0.5, rz + speed * 0.2)
        self.sphere_phase += dt * (1.0 + raw_volume * 2.0)

    def tick(self, dt: float) -> ControlFrame:
        """
        Run one full tick.

        Args:
            dt: Seconds since the previous tick; clamped to [0, max_dt]
                so a stall cannot expire the whole pool at once.

        Returns:
            The ControlFrame for this tick.
        """
        settings = self.settings
        dt = min(max(float(dt), 0.0), settings.max_dt)

        frame = self.sampler.sample()
        if frame is UNAVAILABLE:
            signal_present = False
            bands = None
            raw_volume = 0.0
            measurement = None
        else:
            signal_present = True
            bands = self.aggregator.compute_bands(frame)
            raw_volume = self.estimator.compute_volume(frame.waveform)
            measurement = ControlState.from_measurement(bands, raw_volume)

        self.state = self.smoother.update(self.state, measurement, signal_present)
        self.particle_drive = self.particle_smoother.update(
            self.particle_drive, measurement, signal_present
        )

        drive = self.particle_drive
        changed = self.engine.tick(self.pool, dt, drive.volume, drive.mid)
        self.engine.tint(self.pool, bands, respawned=changed)
        particles = self.engine.render(self.pool)

        self.time += dt
        self._advance_sphere(dt, raw_volume)

        return ControlFrame(
            bands=self.state,
            particles=particles,
            changed=changed,
            boost=settings.bloom_strength + self.state.volume * settings.audio_bloom_factor,
            time=self.time,
            sphere_phase=self.sphere_phase,
            sphere_rotation=self.sphere_rotation,
            signal_present=signal_present,
        )
