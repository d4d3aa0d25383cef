"""
Offline control pipeline.

Plays an audio file through the FrameDriver at a fixed tick rate and
collects or exports the resulting control frames.
"""

import logging
import math
from pathlib import Path
from typing import Any, Callable, Iterator, Union

from sonosphere.config import VisualizerSettings
from sonosphere.core.sampler import SignalSampler
from sonosphere.driver import ControlFrame, FrameDriver
from sonosphere.io.exporter import ControlFrameExporter
from sonosphere.sources import AnalyserConfig, BufferedAudioGraph

logger = logging.getLogger(__name__)


class OfflinePipeline:
    """
    Audio file to control manifest.

    The graph clock advances by exactly 1 / fps per tick, so runs are
    reproducible for a given seed.
    """

    def __init__(
        self,
        fps: int = 60,
        settings: VisualizerSettings | None = None,
        sample_rate: int | None = None,
        analyser_config: AnalyserConfig | None = None,
        seed: int | None = None,
        include_particles: bool = False,
    ):
        """
        Initialize the pipeline.

        Args:
            fps: Ticks per second of audio.
            settings: Visualizer settings for the driver.
            sample_rate: Decode rate; None keeps the file's native rate.
            analyser_config: Analysis window parameters.
            seed: Random seed for the particle engine.
            include_particles: Export per-particle attributes too.
        """
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.fps = fps
        self.settings = settings or VisualizerSettings()
        self.sample_rate = sample_rate
        self.analyser_config = analyser_config
        self.seed = seed
        self.exporter = ControlFrameExporter(include_particles=include_particles)

        if 1.0 / fps > self.settings.max_dt:
            logger.warning(
                "Tick length %.3fs exceeds max_dt %.3fs; playback will outrun the particle clock",
                1.0 / fps,
                self.settings.max_dt,
            )

    def load(self, audio_path: Union[str, Path]) -> BufferedAudioGraph:
        """Decode the audio file into a buffered graph."""
        return BufferedAudioGraph.from_file(
            audio_path,
            sample_rate=self.sample_rate,
            analyser_config=self.analyser_config,
        )

    def frames(
        self,
        graph: BufferedAudioGraph,
        max_duration: float | None = None,
    ) -> Iterator[ControlFrame]:
        """
        Yield one control frame per tick until the audio (or limit) ends.

        Args:
            graph: Buffered graph; opened here if it is not running.
            max_duration: Optional limit in seconds.
        """
        duration = graph.duration
        if max_duration is not None:
            duration = min(duration, max_duration)
        n_frames = math.ceil(round(duration * self.fps, 6))
        dt = 1.0 / self.fps

        driver = FrameDriver(SignalSampler(graph), settings=self.settings, seed=self.seed)
        graph.open()
        try:
            for _ in range(n_frames):
                graph.advance(dt)
                yield driver.tick(dt)
        finally:
            graph.close()

    def process(
        self,
        audio_path: Union[str, Path],
        output_path: Union[str, Path, None] = None,
        format: str = "json",
        max_duration: float | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> dict[str, Any]:
        """
        Run the complete pipeline from audio file to manifest.

        Args:
            audio_path: Path to input audio file.
            output_path: Path for output manifest. If None, only returns dict.
            format: Output format ("json" or "numpy").
            max_duration: Optional limit in seconds.
            progress_callback: Called with (current, total) after every frame.

        Returns:
            Dictionary containing manifest data and processing info.
        """
        graph = self.load(audio_path)
        duration = graph.duration
        if max_duration is not None:
            duration = min(duration, max_duration)
        total = math.ceil(round(duration * self.fps, 6))

        # Particle buffers are large; keep only the per-frame records
        records = []
        for i, frame in enumerate(self.frames(graph, max_duration=max_duration)):
            records.append(self.exporter.frame_record(i, frame))
            if progress_callback:
                progress_callback(len(records), total)

        manifest = self.exporter.to_dict(records, self.fps, duration)
        result = {
            "manifest": manifest,
            "duration": duration,
            "n_frames": len(records),
            "fps": self.fps,
        }

        if output_path:
            if format == "numpy":
                written = self.exporter.export_numpy(records, self.fps, output_path)
            else:
                written = self.exporter.export_json(records, self.fps, duration, output_path)
            result["output_path"] = str(written)

        return result
