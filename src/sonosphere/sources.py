"""
Audio graph collaborators.

An audio graph owns a signal source and a SpectrumAnalyser and exposes
its analysis buffers to the SignalSampler. Two sources are provided:
a buffered signal (decoded from a file, played against the caller's
clock) and live capture from a sound device.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

import librosa
import numpy as np
from scipy import signal as scipy_signal

logger = logging.getLogger(__name__)


class AudioDeviceError(RuntimeError):
    """The audio graph could not be opened or resumed."""


class GraphState(Enum):
    CLOSED = "closed"
    RUNNING = "running"
    SUSPENDED = "suspended"
    ENDED = "ended"


@dataclass(frozen=True)
class AnalyserConfig:
    """Analysis window parameters."""

    fft_size: int = 2048
    smoothing_time_constant: float = 0.8
    min_decibels: float = -100.0
    max_decibels: float = -30.0

    def __post_init__(self):
        size = self.fft_size
        if size < 32 or size > 32768 or size & (size - 1):
            raise ValueError(f"fft_size must be a power of two in [32, 32768], got {size}")
        if self.max_decibels <= self.min_decibels:
            raise ValueError("max_decibels must be greater than min_decibels")
        if not 0.0 <= self.smoothing_time_constant <= 1.0:
            raise ValueError("smoothing_time_constant must lie in [0, 1]")

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2


class SpectrumAnalyser:
    """
    Byte spectrum and waveform from the most recent analysis window.

    Applies a Blackman window, averages magnitudes over time with the
    smoothing constant, and maps decibels in [min_decibels, max_decibels]
    onto bytes 0-255. Waveform samples map [-1, 1] onto 0-255 around 128.
    """

    def __init__(self, config: AnalyserConfig | None = None):
        self.cfg = config or AnalyserConfig()
        self.window = scipy_signal.get_window("blackman", self.cfg.fft_size)
        self._smoothed = np.zeros(self.cfg.bin_count)

    @property
    def bin_count(self) -> int:
        return self.cfg.bin_count

    def reset(self):
        """Forget the time-smoothed spectrum."""
        self._smoothed = np.zeros(self.cfg.bin_count)

    def _fit_window(self, samples: np.ndarray) -> np.ndarray:
        """Keep the newest fft_size samples, zero-padding older ones."""
        fft_size = self.cfg.fft_size
        samples = np.asarray(samples, dtype=np.float64).ravel()
        if len(samples) >= fft_size:
            return samples[-fft_size:]
        padded = np.zeros(fft_size)
        padded[fft_size - len(samples):] = samples
        return padded

    def frequency_bytes(self, samples: np.ndarray) -> np.ndarray:
        """Byte magnitude per bin; updates the time-smoothed spectrum."""
        cfg = self.cfg
        frame = self._fit_window(samples) * self.window
        magnitude = np.abs(np.fft.rfft(frame)[:cfg.bin_count]) / cfg.fft_size

        tau = cfg.smoothing_time_constant
        smoothed = tau * self._smoothed + (1.0 - tau) * magnitude
        self._smoothed = np.nan_to_num(smoothed, nan=0.0, posinf=0.0, neginf=0.0)

        decibels = 20.0 * np.log10(np.maximum(self._smoothed, 1e-20))
        scale = 255.0 / (cfg.max_decibels - cfg.min_decibels)
        scaled = np.floor(scale * (decibels - cfg.min_decibels))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def waveform_bytes(self, samples: np.ndarray) -> np.ndarray:
        """Byte waveform of the first bin_count samples of the window."""
        frame = self._fit_window(samples)[:self.cfg.bin_count]
        scaled = np.floor(128.0 * (frame + 1.0))
        return np.clip(scaled, 0, 255).astype(np.uint8)

    def analyse(self, samples: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Spectrum and waveform bytes of one window, read back to back."""
        return self.frequency_bytes(samples), self.waveform_bytes(samples)


class AudioGraph:
    """
    Base class for analyser-backed signal sources.

    Subclasses provide the newest samples via _current_window() and may
    hook device work into _start(), _stop() and _close().
    """

    def __init__(self, sample_rate: float, analyser_config: AnalyserConfig | None = None):
        self.sample_rate = float(sample_rate)
        self.analyser = SpectrumAnalyser(analyser_config)
        self.state = GraphState.CLOSED

    @property
    def bin_count(self) -> int:
        return self.analyser.bin_count

    @property
    def is_running(self) -> bool:
        return self.state is GraphState.RUNNING

    def _current_window(self) -> np.ndarray:
        raise NotImplementedError

    def _start(self):
        pass

    def _stop(self):
        pass

    def _close(self):
        pass

    def read_analysis(self) -> tuple[np.ndarray, np.ndarray]:
        """Frequency and waveform bytes of the current analysis window."""
        return self.analyser.analyse(self._current_window())

    def advance(self, dt: float):
        """Move the source clock forward; live sources ignore this."""

    def open(self):
        """Start the graph. Raises AudioDeviceError when the source fails."""
        if self.state is GraphState.RUNNING:
            return
        self._start()
        self.state = GraphState.RUNNING
        logger.info("%s running at %.0f Hz", type(self).__name__, self.sample_rate)

    def suspend(self):
        if self.state is not GraphState.RUNNING:
            return
        self._stop()
        self.state = GraphState.SUSPENDED
        logger.info("%s suspended", type(self).__name__)

    def resume(self):
        """Restart a suspended or ended graph; opens a closed one."""
        if self.state is GraphState.RUNNING:
            return
        if self.state is GraphState.CLOSED:
            self.open()
            return
        self._start()
        self.state = GraphState.RUNNING
        logger.info("%s resumed", type(self).__name__)

    def close(self):
        if self.state is GraphState.CLOSED:
            return
        self._close()
        self.state = GraphState.CLOSED
        self.analyser.reset()
        logger.info("%s closed", type(self).__name__)


class BufferedAudioGraph(AudioGraph):
    """
    Plays an in-memory mono signal against an external clock.

    The play cursor moves only through advance(), so offline rendering
    stays deterministic. Without looping, the graph ends at the last
    sample and reports not running until resumed.
    """

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: float,
        loop: bool = False,
        analyser_config: AnalyserConfig | None = None,
    ):
        super().__init__(sample_rate, analyser_config)
        samples = np.asarray(samples, dtype=np.float32)
        if samples.ndim > 1:
            # librosa layout is (channels, samples)
            samples = samples.mean(axis=0)
        self.samples = samples
        self.loop = loop
        self.cursor = 0
        self.wrapped = False  # Played through the end at least once

    @classmethod
    def from_file(
        cls,
        audio_path: Union[str, Path],
        sample_rate: int | None = None,
        loop: bool = False,
        analyser_config: AnalyserConfig | None = None,
    ) -> "BufferedAudioGraph":
        """
        Decode an audio file into a buffered graph.

        Args:
            audio_path: Path to a wav, mp3 or flac file.
            sample_rate: Target rate; None keeps the file's native rate.
            loop: Restart from the beginning when the end is reached.
            analyser_config: Analysis window parameters.
        """
        audio_path = Path(audio_path)
        if not audio_path.exists():
            raise FileNotFoundError(f"Audio file not found: {audio_path}")

        logger.info("Loading audio: %s", audio_path)
        y, sr = librosa.load(audio_path, sr=sample_rate, mono=True)
        return cls(y, sr, loop=loop, analyser_config=analyser_config)

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate

    @property
    def position(self) -> float:
        """Play position in seconds."""
        return self.cursor / self.sample_rate

    def seek(self, seconds: float):
        self.cursor = int(np.clip(round(seconds * self.sample_rate), 0, len(self.samples)))

    def _current_window(self) -> np.ndarray:
        fft_size = self.analyser.cfg.fft_size
        if self.loop and self.wrapped and self.cursor < fft_size:
            # The window straddles the loop point
            tail = self.samples[-(fft_size - self.cursor):]
            return np.concatenate([tail, self.samples[:self.cursor]])
        start = max(0, self.cursor - fft_size)
        return self.samples[start:self.cursor]

    def _start(self):
        if self.state is GraphState.ENDED:
            self.cursor = 0

    def advance(self, dt: float):
        if self.state is not GraphState.RUNNING or dt <= 0:
            return

        total = len(self.samples)
        self.cursor += int(round(dt * self.sample_rate))
        if self.cursor < total:
            return

        if self.loop and total > 0:
            self.cursor %= total
            self.wrapped = True
        else:
            self.cursor = total
            self.state = GraphState.ENDED
            logger.info("Playback ended after %.2fs", self.duration)


class LiveInputGraph(AudioGraph):
    """
    Captures a sound input device through sounddevice.

    Blocks arrive on the device callback thread and are handed over
    through a bounded queue; the analyser runs on the caller's thread
    when read_analysis() drains it.
    """

    def __init__(
        self,
        device: int | str | None = None,
        sample_rate: int = 44100,
        block_size: int = 512,
        channels: int = 1,
        ready_timeout: float = 2.0,
        max_pending_blocks: int = 64,
        analyser_config: AnalyserConfig | None = None,
    ):
        super().__init__(sample_rate, analyser_config)
        self.device = device
        self.block_size = block_size
        self.channels = channels
        self.ready_timeout = ready_timeout

        self.stream = None
        self.dropped_blocks = 0
        self._blocks: queue.Queue = queue.Queue(maxsize=max_pending_blocks)
        self._ready = threading.Event()
        self._buffer = np.zeros(self.analyser.cfg.fft_size, dtype=np.float32)

    def _callback(self, indata: np.ndarray, frames: int, time_info, status):
        """Device thread: copy the block and return."""
        if status:
            logger.warning("Audio input status: %s", status)
        self._ready.set()
        try:
            self._blocks.put_nowait(indata.mean(axis=1).astype(np.float32))
        except queue.Full:
            self.dropped_blocks += 1

    def _drain(self):
        blocks = []
        while True:
            try:
                blocks.append(self._blocks.get_nowait())
            except queue.Empty:
                break
        if blocks:
            fft_size = self.analyser.cfg.fft_size
            self._buffer = np.concatenate([self._buffer, *blocks])[-fft_size:]

    def _current_window(self) -> np.ndarray:
        self._drain()
        return self._buffer

    def _start(self):
        if self.stream is None:
            self.stream = self._open_stream()

        self._ready.clear()
        try:
            self.stream.start()
        except Exception as e:
            logger.error("Failed to start audio input: %s", e)
            self.stream.close()
            self.stream = None
            raise AudioDeviceError(f"Cannot start audio input: {e}") from e

        # Bounded wait for the device to deliver its first block
        if not self._ready.wait(self.ready_timeout):
            logger.warning(
                "No audio from input device after %.1fs; continuing with silence",
                self.ready_timeout,
            )

    def _open_stream(self):
        try:
            import sounddevice as sd
        except (ImportError, OSError) as e:
            raise AudioDeviceError(f"sounddevice is unavailable: {e}") from e

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                channels=self.channels,
                dtype="float32",
                device=self.device,
                callback=self._callback,
            )
        except Exception as e:
            logger.error("Failed to open audio input %r: %s", self.device, e)
            raise AudioDeviceError(f"Cannot open audio input {self.device!r}: {e}") from e

        logger.info(
            "Opened audio input %s @ %dHz (%sch)",
            self.device if self.device is not None else "system default",
            self.sample_rate,
            self.channels,
        )
        return stream

    def _stop(self):
        self.stream.stop()

    def _close(self):
        if self.stream is not None:
            self.stream.stop()
            self.stream.close()
            self.stream = None
        self._buffer = np.zeros(self.analyser.cfg.fft_size, dtype=np.float32)
