"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from sonosphere.core.sampler import AudioFrame

# Default sample rate for test audio
TEST_SR = 44100

# Bins of a 2048-point analyser
TEST_BINS = 1024


class StaticGraph:
    """Audio graph stand-in that serves the same analysis on every read."""

    def __init__(self, frequency_bins, waveform, sample_rate=TEST_SR, running=True):
        self.frequency_bins = np.asarray(frequency_bins, dtype=np.uint8)
        self.waveform = np.asarray(waveform, dtype=np.uint8)
        self.sample_rate = sample_rate
        self.bin_count = len(self.frequency_bins)
        self.is_running = running
        self.reads = 0

    def read_analysis(self):
        self.reads += 1
        return self.frequency_bins, self.waveform


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


@pytest.fixture
def pure_sine(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a pure 440Hz sine wave (A4 note).

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0  # 2 seconds
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    frequency = 440.0  # A4
    y = 0.5 * np.sin(2 * np.pi * frequency * t)
    return y.astype(np.float32), sample_rate


@pytest.fixture
def white_noise(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate white noise.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    rng = np.random.default_rng(42)  # Reproducible
    duration = 2.0
    samples = int(sample_rate * duration)
    y = rng.standard_normal(samples).astype(np.float32) * 0.3
    return y, sample_rate


@pytest.fixture
def mixed_signal(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a bass line under a chord with clicks at 120 BPM.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)

    harmonic = (
        0.3 * np.sin(2 * np.pi * 65.41 * t) +   # C2
        0.15 * np.sin(2 * np.pi * 261.63 * t) +  # C4
        0.15 * np.sin(2 * np.pi * 329.63 * t) +  # E4
        0.15 * np.sin(2 * np.pi * 392.00 * t)    # G4
    )

    bpm = 120
    samples_per_beat = int(sample_rate * 60 / bpm)
    total_samples = len(t)
    percussive = np.zeros(total_samples)

    click_duration = int(sample_rate * 0.01)
    for beat_start in range(0, total_samples, samples_per_beat):
        click_end = min(beat_start + click_duration, total_samples)
        click_samples = click_end - beat_start
        decay = np.exp(-np.linspace(0, 5, click_samples))
        percussive[beat_start:click_end] = 0.2 * decay

    y = (harmonic + percussive).astype(np.float32)
    return y, sample_rate


@pytest.fixture
def temp_audio_file(tmp_path, mixed_signal):
    """Create a temporary audio file for testing file I/O."""
    import soundfile as sf

    y, sr = mixed_signal
    audio_path = tmp_path / "test_audio.wav"
    sf.write(audio_path, y, sr)
    return audio_path


@pytest.fixture
def saturated_frame() -> AudioFrame:
    """Every bin at full scale, waveform pinned at the top."""
    return AudioFrame(
        frequency_bins=np.full(TEST_BINS, 255, dtype=np.uint8),
        waveform=np.full(TEST_BINS, 255, dtype=np.uint8),
        sample_rate=TEST_SR,
    )


@pytest.fixture
def silent_frame() -> AudioFrame:
    """No spectral energy, waveform resting at the center."""
    return AudioFrame(
        frequency_bins=np.zeros(TEST_BINS, dtype=np.uint8),
        waveform=np.full(TEST_BINS, 128, dtype=np.uint8),
        sample_rate=TEST_SR,
    )


@pytest.fixture
def loud_graph() -> StaticGraph:
    """Running graph serving a saturated analysis."""
    return StaticGraph(
        frequency_bins=np.full(TEST_BINS, 255),
        waveform=np.full(TEST_BINS, 255),
    )
