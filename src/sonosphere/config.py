"""
Visualizer settings.

Settings are an immutable value: changing a control produces a new
VisualizerSettings, and the FrameDriver decides when to apply it.
"""

import logging
import math
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Mapping

from sonosphere.core.particles import ParticleConfig
from sonosphere.core.polisher import SmoothingRates

logger = logging.getLogger(__name__)

# camelCase keys of the browser preset format
CAMEL_CASE_KEYS = {
    "particleCount": "particle_count",
    "particleSize": "particle_size",
    "rotationSpeed": "rotation_speed",
    "sphereRotationSpeed": "sphere_rotation_speed",
    "bloomStrength": "bloom_strength",
    "bloomRadius": "bloom_radius",
    "bloomThreshold": "bloom_threshold",
    "audioBloomFactor": "audio_bloom_factor",
    "sphereNoiseStrength": "sphere_noise_strength",
    "sphereNoiseSpeed": "sphere_noise_speed",
    "particleMinLife": "particle_min_life",
    "particleMaxLife": "particle_max_life",
}

# Ranges of the on-screen controls; mapped values are clamped into them.
CONTROL_RANGES: dict[str, tuple[float, float]] = {
    "particle_count": (1000, 50000),
    "particle_size": (0.1, 5.0),
    "rotation_speed": (0.0, 1.0),
    "sphere_rotation_speed": (0.0, 1.0),
    "bloom_strength": (0.0, 5.0),
    "bloom_radius": (0.0, 2.0),
    "bloom_threshold": (0.0, 1.0),
    "audio_bloom_factor": (0.0, 5.0),
    "sphere_noise_strength": (0.0, 0.5),
    "sphere_noise_speed": (0.0, 1.0),
    "particle_min_life": (0.5, 10.0),
    "particle_max_life": (1.0, 20.0),
}


@dataclass(frozen=True)
class VisualizerSettings:
    """Tunable configuration surface of the visualizer."""

    # Particles
    particle_count: int = 6000
    particle_size: float = 0.8
    rotation_speed: float = 0.1
    particle_min_life: float = 2.0
    particle_max_life: float = 5.0
    volume_size_gain: float = 0.8
    mid_size_gain: float = 1.2

    # Sphere
    sphere_rotation_speed: float = 0.15
    sphere_noise_strength: float = 0.15
    sphere_noise_speed: float = 0.3

    # Bloom
    bloom_strength: float = 0.8
    bloom_radius: float = 0.7
    bloom_threshold: float = 0.8
    audio_bloom_factor: float = 1.2

    # Smoothing
    attack_rate: float = 0.2
    release_rate: float = 0.1
    particle_attack_rate: float = 0.1
    particle_release_rate: float = 0.05

    # Largest step a single tick may take, in seconds
    max_dt: float = 0.05

    def __post_init__(self):
        if self.particle_count <= 0:
            raise ValueError(f"particle_count must be positive, got {self.particle_count}")
        if not 0 < self.max_dt < math.inf:
            raise ValueError(f"max_dt must be positive and finite, got {self.max_dt}")

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Any],
        base: "VisualizerSettings | None" = None,
    ) -> "VisualizerSettings":
        """
        Overwrite settings from a flat key to number mapping.

        Missing keys keep the value from ``base`` (defaults when None);
        unknown keys are ignored. Control values are clamped to the
        ranges of the on-screen controls.

        Raises:
            ValueError: A known key holds a non-numeric or non-finite value.
        """
        base = base or cls()
        known = {f.name for f in fields(cls)}
        overrides: dict[str, Any] = {}

        for key, value in mapping.items():
            name = CAMEL_CASE_KEYS.get(key, key)
            if name not in known:
                logger.debug("Ignoring unknown setting %r", key)
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValueError(f"Setting {key!r} must be a finite number, got {value!r}")

            if name in CONTROL_RANGES:
                low, high = CONTROL_RANGES[name]
                value = min(max(value, low), high)
            overrides[name] = int(round(value)) if name == "particle_count" else float(value)

        return replace(base, **overrides)

    def to_mapping(self) -> dict[str, float]:
        """Flat key to number form, suitable for preset storage."""
        return asdict(self)

    def smoothing_rates(self) -> SmoothingRates:
        return SmoothingRates(attack=self.attack_rate, release=self.release_rate)

    def particle_rates(self) -> SmoothingRates:
        return SmoothingRates(attack=self.particle_attack_rate, release=self.particle_release_rate)

    def particle_config(self) -> ParticleConfig:
        return ParticleConfig(
            min_lifespan=self.particle_min_life,
            max_lifespan=self.particle_max_life,
            volume_size_gain=self.volume_size_gain,
            mid_size_gain=self.mid_size_gain,
            particle_scale=self.particle_size,
            rotation_speed=self.rotation_speed,
        )
