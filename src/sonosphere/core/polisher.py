"""
Signal smoothing module.

Turns noisy per-tick band and volume measurements into temporally
stable control values with attack/release interpolation.
"""

import math
from dataclasses import dataclass, fields, replace
from typing import Mapping

from sonosphere.core.analyzer import BAND_NAMES

CHANNELS: tuple[str, ...] = BAND_NAMES + ("volume",)


@dataclass(frozen=True)
class SmoothingRates:
    """Per-tick interpolation factors toward the target."""

    attack: float = 0.2  # Signal present: fast rise
    release: float = 0.1  # Signal absent: slow fade to zero


# Particle-facing channels react and fade more slowly than the sphere ones.
SPHERE_RATES = SmoothingRates(attack=0.2, release=0.1)
PARTICLE_RATES = SmoothingRates(attack=0.1, release=0.05)


@dataclass(frozen=True)
class ControlState:
    """Smoothed control values in [0.0, 1.0], one per band plus volume."""

    bass: float = 0.0
    low_mid: float = 0.0
    mid: float = 0.0
    high_mid: float = 0.0
    treble: float = 0.0
    volume: float = 0.0

    @classmethod
    def from_measurement(
        cls,
        bands: Mapping[str, float],
        volume: float,
    ) -> "ControlState":
        """Build a state from raw band energies and a volume estimate."""
        values = {name: float(bands.get(name, 0.0)) for name in BAND_NAMES}
        return cls(volume=float(volume), **values)

    def as_dict(self) -> dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _lerp(current: float, target: float, factor: float) -> float:
    return current + (target - current) * factor


def ticks_to_converge(alpha: float, epsilon: float) -> int:
    """
    Number of updates needed to close a unit gap to within epsilon.

    Args:
        alpha: Interpolation factor in (0, 1).
        epsilon: Remaining fraction of the initial gap, in (0, 1).
    """
    if not 0.0 < alpha < 1.0:
        raise ValueError(f"alpha must lie in (0, 1), got {alpha}")
    if not 0.0 < epsilon < 1.0:
        raise ValueError(f"epsilon must lie in (0, 1), got {epsilon}")
    return math.ceil(math.log(epsilon) / math.log(1.0 - alpha))


class ParameterSmoother:
    """
    Dual-rate smoother for the six control channels.

    Each channel is pulled toward its measurement at the attack rate
    while a signal is present, and toward zero at the release rate
    otherwise, so onsets read as punchy while silence fades gracefully.
    """

    def __init__(self, rates: SmoothingRates | None = None):
        """
        Initialize the smoother.

        Args:
            rates: Attack/release factors (default: 0.2 attack, 0.1 release).
                Values are clamped to [0.0, 1.0].
        """
        rates = rates or SmoothingRates()
        self.rates = SmoothingRates(
            attack=min(max(rates.attack, 0.0), 1.0),
            release=min(max(rates.release, 0.0), 1.0),
        )

    def update(
        self,
        state: ControlState,
        measurement: ControlState | None,
        signal_present: bool,
    ) -> ControlState:
        """
        Advance every channel by one tick.

        Args:
            state: Values from the previous tick.
            measurement: Raw values for this tick; ignored when no signal.
            signal_present: Whether the sampler produced a frame this tick.

        Returns:
            New ControlState; the input state is left untouched.
        """
        if signal_present and measurement is not None:
            alpha = self.rates.attack
            targets = measurement.as_dict()
        else:
            alpha = self.rates.release
            targets = dict.fromkeys(CHANNELS, 0.0)

        current = state.as_dict()
        updated = {
            name: min(max(_lerp(current[name], targets[name], alpha), 0.0), 1.0)
            for name in CHANNELS
        }
        return replace(state, **updated)
