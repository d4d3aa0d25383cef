"""
Fixed-capacity particle field with aging, respawn and a visibility envelope.

Particles live in index-stable struct-of-arrays buffers. Nothing is
allocated or freed per particle after pool creation: a particle whose
life runs out is redrawn in place within the same tick.
"""

import logging
import math
from dataclasses import dataclass
from typing import Mapping

import numpy as np

logger = logging.getLogger(__name__)

# Shortest lifespan a particle may be given, in seconds.
MIN_LIFESPAN = 0.1


@dataclass
class ParticleConfig:
    """Configuration for particle spawning and rendering."""

    # Spawn shell
    inner_radius: float = 2.5
    outer_radius: float = 15.0

    # Attribute draws
    color_floor: float = 0.6
    color_ceiling: float = 1.0
    size_min: float = 0.5
    size_max: float = 1.5

    # Lifespan bounds in seconds
    min_lifespan: float = 2.0
    max_lifespan: float = 5.0

    # Alpha envelope over normalized age
    fade_in: float = 0.2
    fade_out_start: float = 0.7

    # Audio-driven size gains
    volume_size_gain: float = 0.8
    mid_size_gain: float = 1.2
    particle_scale: float = 0.8

    # Motion
    rotation_speed: float = 0.1
    drift_speed: float = 0.05
    bob_amplitude: float = 0.3

    # Color tint toward band energies (audio) or back to base (silence)
    tint_rate: float = 0.1
    rest_rate: float = 0.02

    def lifespan_range(self) -> tuple[float, float]:
        """
        Lifespan bounds clamped to a positive, non-empty span.

        A misconfigured range is repaired rather than rejected so that
        every particle is guaranteed to expire.
        """
        low = max(self.min_lifespan, MIN_LIFESPAN)
        high = max(self.max_lifespan, low + MIN_LIFESPAN)
        return low, high


@dataclass
class ParticlePool:
    """Struct-of-arrays particle storage; capacity is fixed."""

    positions: np.ndarray  # (N, 3) float32
    colors: np.ndarray  # (N, 3) float32
    base_sizes: np.ndarray  # (N,) float32
    random_factors: np.ndarray  # (N,) float32, [0, 1)
    life: np.ndarray  # (N,) float64, seconds remaining
    max_life: np.ndarray  # (N,) float64, seconds

    @property
    def capacity(self) -> int:
        return len(self.life)

    def __len__(self) -> int:
        return self.capacity


@dataclass(frozen=True)
class ParticleAttributes:
    """Render-ready per-particle values derived for one tick."""

    positions: np.ndarray  # (N, 3) drifted positions
    colors: np.ndarray  # (N, 3)
    sizes: np.ndarray  # (N,)
    alphas: np.ndarray  # (N,)

    def __len__(self) -> int:
        return len(self.alphas)


class ParticleLifecycleEngine:
    """
    Ages, respawns and envelopes a particle pool under audio modulation.

    Holds the field clock and whole-field rotation; per-particle state
    lives entirely in the ParticlePool passed to each call.
    """

    def __init__(self, config: ParticleConfig | None = None, seed: int | None = None):
        self.cfg = config or ParticleConfig()
        self.rng = np.random.default_rng(seed)

        self.time = 0.0
        self.system_rotation = 0.0
        self.audio_volume = 0.0
        self.audio_mid = 0.0

    def configure(self, config: ParticleConfig):
        """Swap the configuration; lifespan changes apply from the next respawn."""
        self.cfg = config

    def create_pool(self, capacity: int) -> ParticlePool:
        """
        Allocate a pool and spawn every particle.

        Args:
            capacity: Number of particles; fixed for the pool's lifetime.
        """
        if capacity <= 0:
            raise ValueError(f"Particle capacity must be positive, got {capacity}")

        pool = ParticlePool(
            positions=np.zeros((capacity, 3), dtype=np.float32),
            colors=np.zeros((capacity, 3), dtype=np.float32),
            base_sizes=np.zeros(capacity, dtype=np.float32),
            random_factors=np.zeros(capacity, dtype=np.float32),
            life=np.zeros(capacity, dtype=np.float64),
            max_life=np.ones(capacity, dtype=np.float64),
        )
        self.respawn(pool, np.ones(capacity, dtype=bool))
        logger.info("Created particle pool with %d particles", capacity)
        return pool

    def respawn(self, pool: ParticlePool, mask: np.ndarray):
        """Redraw every attribute of the masked particles in place."""
        count = int(np.count_nonzero(mask))
        if count == 0:
            return

        cfg = self.cfg
        rng = self.rng

        # Uniform radius, uniform direction on the sphere
        radius = cfg.inner_radius + rng.random(count) * (cfg.outer_radius - cfg.inner_radius)
        theta = rng.random(count) * 2 * math.pi
        phi = np.arccos(rng.random(count) * 2 - 1)
        pool.positions[mask] = np.column_stack((
            radius * np.sin(phi) * np.cos(theta),
            radius * np.sin(phi) * np.sin(theta),
            radius * np.cos(phi),
        ))

        color_span = cfg.color_ceiling - cfg.color_floor
        pool.colors[mask] = cfg.color_floor + rng.random((count, 3)) * color_span
        pool.base_sizes[mask] = cfg.size_min + rng.random(count) * (cfg.size_max - cfg.size_min)
        pool.random_factors[mask] = rng.random(count)

        low, high = cfg.lifespan_range()
        max_life = np.maximum(low + rng.random(count) * (high - low), MIN_LIFESPAN)
        pool.max_life[mask] = max_life
        pool.life[mask] = max_life

    def tick(
        self,
        pool: ParticlePool,
        dt: float,
        audio_volume: float,
        audio_mid: float,
    ) -> bool:
        """
        Age every particle by dt and respawn the expired ones.

        Args:
            pool: Pool to advance in place.
            dt: Elapsed seconds; negative values count as zero.
            audio_volume: Smoothed volume used by the next render().
            audio_mid: Smoothed mid-band energy used by the next render().

        Returns:
            True if any particle respawned, so static buffers need re-upload.
        """
        dt = max(float(dt), 0.0)
        self.time += dt
        self.system_rotation += self.cfg.rotation_speed * dt * 0.3
        self.audio_volume = float(audio_volume)
        self.audio_mid = float(audio_mid)

        pool.life -= dt
        expired = pool.life <= 0
        if not expired.any():
            return False

        self.respawn(pool, expired)
        return True

    def alpha_envelope(
        self,
        life: np.ndarray,
        max_life: np.ndarray,
        random_factors: np.ndarray,
    ) -> np.ndarray:
        """
        Fade-in / hold / fade-out visibility from normalized age.

        Ramps 0 to 1 over the fade-in fraction, holds, then ramps back to 0
        after fade_out_start. Scaled per particle by 0.5 + 0.5 * random factor
        so the population does not pulse in unison.
        """
        fade_in = self.cfg.fade_in
        fade_out = self.cfg.fade_out_start
        age = 1.0 - life / max_life

        alpha = np.ones_like(age)
        rising = age < fade_in
        falling = age > fade_out
        alpha[rising] = age[rising] / fade_in
        alpha[falling] = 1.0 - (age[falling] - fade_out) / (1.0 - fade_out)

        return np.clip(alpha, 0.0, 1.0) * (0.5 + 0.5 * random_factors)

    def drift_positions(self, pool: ParticlePool, audio_mid: float) -> np.ndarray:
        """Apply orbital drift, vertical bob and field rotation to base positions."""
        cfg = self.cfg
        rf = pool.random_factors.astype(np.float64)
        x = pool.positions[:, 0].astype(np.float64)
        y = pool.positions[:, 1].astype(np.float64)
        z = pool.positions[:, 2].astype(np.float64)

        angle = self.time * cfg.drift_speed * (1.0 + rf * 0.8) + rf * 2 * math.pi
        s = np.sin(angle)
        c = np.cos(angle)

        # Rotate in the XZ plane, then the XY plane
        x, z = c * x + s * z, -s * x + c * z
        x, y = c * x + s * y, -s * x + c * y
        y = y + np.sin(self.time * 0.2 + rf * 10.0) * cfg.bob_amplitude * (1.0 + audio_mid * 2.0)

        # Whole-field rotation about Y
        sr = math.sin(self.system_rotation)
        cr = math.cos(self.system_rotation)
        x, z = cr * x + sr * z, -sr * x + cr * z

        return np.column_stack((x, y, z)).astype(np.float32)

    def render(
        self,
        pool: ParticlePool,
        audio_volume: float | None = None,
        audio_mid: float | None = None,
    ) -> ParticleAttributes:
        """
        Derive positions, colors, sizes and alphas for the current tick.

        Args:
            pool: Pool to read.
            audio_volume: Override for the volume passed to the last tick().
            audio_mid: Override for the mid energy passed to the last tick().
        """
        cfg = self.cfg
        volume = self.audio_volume if audio_volume is None else float(audio_volume)
        mid = self.audio_mid if audio_mid is None else float(audio_mid)

        alphas = self.alpha_envelope(pool.life, pool.max_life, pool.random_factors)
        audio_factor = 1.0 + volume * cfg.volume_size_gain + mid * cfg.mid_size_gain
        sizes = pool.base_sizes * cfg.particle_scale * audio_factor * alphas

        attributes = ParticleAttributes(
            positions=self.drift_positions(pool, mid),
            colors=pool.colors.copy(),
            sizes=sizes.astype(np.float32),
            alphas=alphas.astype(np.float32),
        )
        for array in (attributes.positions, attributes.colors, attributes.sizes, attributes.alphas):
            array.setflags(write=False)
        return attributes

    def tint(
        self,
        pool: ParticlePool,
        bands: Mapping[str, float] | None,
        respawned: bool = False,
    ):
        """
        Drift particle colors with the music.

        With audio, colors move toward a bass/mid/treble tint; without it,
        they relax toward a random bright base. Skipped on ticks where a
        respawn already rewrote the colors.

        Args:
            pool: Pool to recolor in place.
            bands: Raw band energies for this tick, or None when silent.
            respawned: Whether tick() respawned anything this tick.
        """
        if respawned:
            return

        cfg = self.cfg
        if bands is not None:
            target = np.array([
                0.2 + bands.get("bass", 0.0) * 0.5,
                0.2 + bands.get("mid", 0.0) * 0.5,
                0.2 + bands.get("treble", 0.0) * 0.5,
            ], dtype=np.float32)
            rate = cfg.tint_rate
        else:
            color_span = cfg.color_ceiling - cfg.color_floor
            target = cfg.color_floor + self.rng.random(pool.colors.shape) * color_span
            rate = cfg.rest_rate

        pool.colors += (target - pool.colors) * rate
