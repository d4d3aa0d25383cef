"""
Control frame serialization module.

Exports the per-tick control frames of an offline run to a JSON
manifest or a NumPy archive for renderers and inspection tools.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence, Union

import numpy as np

from sonosphere.core.polisher import CHANNELS
from sonosphere.driver import ControlFrame

# A ControlFrame, or the record built from one by frame_record()
FrameLike = Union[ControlFrame, dict]


@dataclass
class ManifestMetadata:
    """Metadata header for the control manifest."""

    fps: int
    duration: float
    n_frames: int
    particle_count: int
    schema_version: str = "1.0"


class ControlFrameExporter:
    """
    Exports control frames to manifest form.

    Every frame record carries the smoothed channels, bloom boost, sphere
    clock and a particle summary. Full particle attributes are optional
    because they dominate the file size; long runs should convert frames
    to records as they arrive rather than keep the ControlFrames around.
    """

    def __init__(self, precision: int = 4, include_particles: bool = False):
        """
        Initialize the exporter.

        Args:
            precision: Decimal places for floating point values.
            include_particles: Embed per-particle attributes in every frame.
        """
        self.precision = precision
        self.include_particles = include_particles

    def _round(self, value: float) -> float:
        """Round to configured precision."""
        return round(float(value), self.precision)

    def _round_array(self, values: np.ndarray) -> list:
        return np.round(values.astype(np.float64), self.precision).tolist()

    def frame_record(self, index: int, frame: ControlFrame) -> dict[str, Any]:
        """
        Build a single frame's data dictionary.

        Args:
            index: Frame index.
            frame: Source control frame.
        """
        particles = frame.particles
        record: dict[str, Any] = {
            "frame_index": index,
            "time": self._round(frame.time),
            "signal_present": frame.signal_present,
            "changed": frame.changed,
        }
        record.update({name: self._round(value) for name, value in frame.bands.as_dict().items()})
        record.update({
            "boost": self._round(frame.boost),
            "sphere_phase": self._round(frame.sphere_phase),
            "sphere_rotation": [self._round(angle) for angle in frame.sphere_rotation],
            "particle_count": len(particles),
            "mean_alpha": self._round(np.mean(particles.alphas)) if len(particles) else 0.0,
            "mean_size": self._round(np.mean(particles.sizes)) if len(particles) else 0.0,
        })

        if self.include_particles:
            record["particles"] = {
                "positions": self._round_array(particles.positions),
                "colors": self._round_array(particles.colors),
                "sizes": self._round_array(particles.sizes),
                "alphas": self._round_array(particles.alphas),
            }
        return record

    def _records(self, frames: Sequence[FrameLike]) -> list[dict[str, Any]]:
        return [
            self.frame_record(i, frame) if isinstance(frame, ControlFrame) else frame
            for i, frame in enumerate(frames)
        ]

    def build_manifest(
        self,
        frames: Sequence[FrameLike],
        fps: int,
        duration: float,
    ) -> dict[str, Any]:
        """
        Build the complete manifest dictionary.

        Args:
            frames: Control frames (or their records) in tick order.
            fps: Tick rate the frames were produced at.
            duration: Covered audio duration in seconds.

        Returns:
            Manifest dictionary ready for serialization.
        """
        records = self._records(frames)
        metadata = ManifestMetadata(
            fps=fps,
            duration=self._round(duration),
            n_frames=len(records),
            particle_count=records[0]["particle_count"] if records else 0,
        )

        return {
            "metadata": {
                "fps": metadata.fps,
                "duration": metadata.duration,
                "n_frames": metadata.n_frames,
                "particle_count": metadata.particle_count,
                "channels": list(CHANNELS),
                "schema_version": metadata.schema_version,
            },
            "frames": records,
        }

    def export_json(
        self,
        frames: Sequence[FrameLike],
        fps: int,
        duration: float,
        output_path: Union[str, Path],
        indent: int = 2,
    ) -> Path:
        """Export the manifest to a JSON file and return its path."""
        manifest = self.build_manifest(frames, fps, duration)
        output_path = Path(output_path)

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(manifest, f, indent=indent)

        return output_path

    def export_numpy(
        self,
        frames: Sequence[FrameLike],
        fps: int,
        output_path: Union[str, Path],
    ) -> Path:
        """
        Export frames as a NumPy .npz archive for faster loading.

        Channels are stacked into a (n_frames, 6) array in CHANNELS order.
        """
        output_path = Path(output_path)
        if output_path.suffix != ".npz":
            # np.savez_compressed appends the suffix itself
            output_path = output_path.with_suffix(".npz")

        records = self._records(frames)
        channels = np.array(
            [[record[name] for name in CHANNELS] for record in records],
            dtype=np.float32,
        ).reshape(len(records), len(CHANNELS))

        arrays: dict[str, Any] = {
            "channels": channels,
            "channel_names": np.array(CHANNELS),
            "time": np.array([r["time"] for r in records], dtype=np.float64),
            "boost": np.array([r["boost"] for r in records], dtype=np.float32),
            "changed": np.array([r["changed"] for r in records], dtype=bool),
            "signal_present": np.array([r["signal_present"] for r in records], dtype=bool),
            "sphere_phase": np.array([r["sphere_phase"] for r in records], dtype=np.float64),
            "fps": fps,
            "n_frames": len(records),
        }
        if records and all("particles" in r for r in records):
            for key in ("positions", "colors", "sizes", "alphas"):
                arrays[key] = np.array([r["particles"][key] for r in records], dtype=np.float32)

        np.savez_compressed(output_path, **arrays)
        return output_path

    def to_dict(
        self,
        frames: Sequence[FrameLike],
        fps: int,
        duration: float,
    ) -> dict[str, Any]:
        """Return manifest as dictionary (for in-memory use)."""
        return self.build_manifest(frames, fps, duration)
