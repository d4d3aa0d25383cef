"""Tests for the audio graph collaborators."""

import sys
import types

import numpy as np
import pytest

from sonosphere.core.sampler import UNAVAILABLE, SignalSampler
from sonosphere.sources import (
    AnalyserConfig,
    AudioDeviceError,
    BufferedAudioGraph,
    GraphState,
    LiveInputGraph,
    SpectrumAnalyser,
)


class FakeInputStream:
    """Stand-in for sounddevice.InputStream that delivers one block on start."""

    instances = []

    def __init__(self, samplerate, blocksize, channels, dtype, device, callback):
        self.samplerate = samplerate
        self.blocksize = blocksize
        self.channels = channels
        self.device = device
        self.callback = callback
        self.started = False
        self.closed = False
        FakeInputStream.instances.append(self)

    def start(self):
        self.started = True
        block = np.full((self.blocksize, self.channels), 0.5, dtype=np.float32)
        self.callback(block, self.blocksize, None, None)

    def stop(self):
        self.started = False

    def close(self):
        self.closed = True


@pytest.fixture
def fake_sounddevice(monkeypatch):
    """Install a fake sounddevice module."""
    FakeInputStream.instances = []
    module = types.ModuleType("sounddevice")
    module.InputStream = FakeInputStream
    monkeypatch.setitem(sys.modules, "sounddevice", module)
    return module


class TestAnalyserConfig:
    """Tests for analysis window validation."""

    def test_defaults(self):
        cfg = AnalyserConfig()

        assert cfg.fft_size == 2048
        assert cfg.bin_count == 1024
        assert cfg.smoothing_time_constant == 0.8

    @pytest.mark.parametrize("size", [16, 1000, 65536])
    def test_rejects_bad_fft_size(self, size):
        with pytest.raises(ValueError, match="fft_size"):
            AnalyserConfig(fft_size=size)

    def test_rejects_inverted_decibel_range(self):
        with pytest.raises(ValueError):
            AnalyserConfig(min_decibels=-30.0, max_decibels=-100.0)


class TestSpectrumAnalyser:
    """Tests for byte spectrum and waveform extraction."""

    def test_silence(self):
        analyser = SpectrumAnalyser()
        freq, wave = analyser.analyse(np.zeros(2048))

        assert freq.dtype == np.uint8
        assert len(freq) == 1024
        assert np.all(freq == 0)
        assert np.all(wave == 128)

    def test_sine_peak_location(self, pure_sine):
        """440 Hz at 44.1kHz lands near bin 20 of 1024."""
        y, _ = pure_sine
        analyser = SpectrumAnalyser()
        freq, _ = analyser.analyse(y[:2048])

        peak = int(np.argmax(freq))
        assert 17 <= peak <= 23
        assert freq[20] > freq[100]

    def test_time_smoothing_builds_up(self, pure_sine):
        y, _ = pure_sine
        analyser = SpectrumAnalyser()

        first, _ = analyser.analyse(y[:2048])
        for _ in range(10):
            later, _ = analyser.analyse(y[:2048])

        assert later[20] >= first[20]

    def test_reset_forgets_history(self, pure_sine):
        y, _ = pure_sine
        analyser = SpectrumAnalyser()
        analyser.analyse(y[:2048])
        analyser.reset()

        freq, _ = analyser.analyse(np.zeros(2048))
        assert np.all(freq == 0)

    def test_short_window_zero_padded(self):
        analyser = SpectrumAnalyser()
        freq, wave = analyser.analyse(np.zeros(100))

        assert len(freq) == 1024
        assert len(wave) == 1024

    def test_waveform_full_scale(self):
        analyser = SpectrumAnalyser()
        _, wave = analyser.analyse(np.ones(2048))

        assert np.all(wave == 255)


class TestBufferedAudioGraph:
    """Tests for the file-backed source."""

    def test_starts_closed(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(y, sr)

        assert graph.state is GraphState.CLOSED
        assert SignalSampler(graph).sample() is UNAVAILABLE

    def test_lifecycle(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(y, sr)

        graph.open()
        assert graph.is_running
        graph.suspend()
        assert graph.state is GraphState.SUSPENDED
        assert not graph.is_running
        graph.resume()
        assert graph.is_running
        graph.close()
        assert graph.state is GraphState.CLOSED

    def test_resume_opens_closed_graph(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(y, sr)
        graph.resume()

        assert graph.is_running

    def test_advance_moves_cursor_only_while_running(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(y, sr)

        graph.advance(0.5)
        assert graph.position == 0.0

        graph.open()
        graph.advance(0.5)
        assert graph.position == pytest.approx(0.5)

    def test_ends_at_last_sample(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(y, sr)
        graph.open()
        graph.advance(graph.duration + 1.0)

        assert graph.state is GraphState.ENDED
        assert not graph.is_running

    def test_resume_after_end_rewinds(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(y, sr)
        graph.open()
        graph.advance(graph.duration)
        graph.resume()

        assert graph.is_running
        assert graph.position == 0.0

    def test_loop_wraps(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(y, sr, loop=True)
        graph.open()
        graph.advance(graph.duration + 0.5)

        assert graph.is_running
        assert graph.position == pytest.approx(0.5, abs=1e-3)

    def test_window_continues_across_loop_point(self):
        """Right after a wrap the window holds the end of the buffer, not padding."""
        sr = 8000
        graph = BufferedAudioGraph(np.full(sr, 0.5, dtype=np.float32), sr, loop=True)
        graph.open()
        graph.advance(1.0 + 10 / sr)

        assert graph.cursor == 10
        window = graph._current_window()
        assert len(window) == 2048
        assert np.all(window == 0.5)

    def test_loop_keeps_volume_steady(self):
        sr = 8000
        graph = BufferedAudioGraph(np.full(sr, 0.5, dtype=np.float32), sr, loop=True)
        sampler = SignalSampler(graph)
        graph.open()
        graph.advance(0.9)
        before = sampler.sample().waveform

        graph.advance(0.1 + 10 / sr)
        after = sampler.sample().waveform

        assert np.array_equal(before, after)

    def test_first_pass_start_is_zero_padded(self):
        graph = BufferedAudioGraph(np.full(8000, 0.5, dtype=np.float32), 8000, loop=True)
        graph.open()
        graph.advance(10 / 8000)

        assert len(graph._current_window()) == 10

    def test_stereo_input_downmixed(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(np.stack([y, y]), sr)

        assert graph.samples.ndim == 1
        assert graph.duration == pytest.approx(2.0)

    def test_sampler_reads_sine(self, pure_sine):
        y, sr = pure_sine
        graph = BufferedAudioGraph(y, sr)
        graph.open()
        graph.advance(0.1)

        frame = SignalSampler(graph).sample()
        assert frame.bin_count == 1024
        assert frame.sample_rate == sr
        assert int(np.argmax(frame.frequency_bins)) in range(17, 24)

    def test_from_file(self, temp_audio_file):
        graph = BufferedAudioGraph.from_file(temp_audio_file)

        assert graph.sample_rate == 44100
        assert graph.duration == pytest.approx(2.0, abs=0.01)

    def test_from_file_resamples(self, temp_audio_file):
        graph = BufferedAudioGraph.from_file(temp_audio_file, sample_rate=22050)
        assert graph.sample_rate == 22050

    def test_from_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            BufferedAudioGraph.from_file(tmp_path / "missing.wav")


class TestLiveInputGraph:
    """Tests for device capture with a fake sounddevice module."""

    def test_open_starts_stream(self, fake_sounddevice):
        graph = LiveInputGraph(device=3, sample_rate=48000, block_size=256)
        graph.open()

        stream = FakeInputStream.instances[-1]
        assert graph.is_running
        assert stream.started
        assert stream.samplerate == 48000
        assert stream.device == 3

    def test_blocks_reach_analyser(self, fake_sounddevice):
        graph = LiveInputGraph(block_size=256)
        graph.open()

        frame = SignalSampler(graph).sample()
        # Newest samples sit at the end of the window; the waveform shows the oldest
        assert frame.bin_count == 1024
        assert np.any(frame.frequency_bins > 0)

    def test_suspend_and_close(self, fake_sounddevice):
        graph = LiveInputGraph()
        graph.open()
        stream = FakeInputStream.instances[-1]

        graph.suspend()
        assert not stream.started
        assert SignalSampler(graph).sample() is UNAVAILABLE

        graph.close()
        assert stream.closed
        assert graph.stream is None

    def test_full_queue_drops_blocks(self, fake_sounddevice):
        graph = LiveInputGraph(max_pending_blocks=1)
        block = np.zeros((512, 1), dtype=np.float32)

        graph._callback(block, 512, None, None)
        graph._callback(block, 512, None, None)

        assert graph.dropped_blocks == 1

    def test_device_failure_raises(self, monkeypatch):
        def broken_stream(**kwargs):
            raise RuntimeError("no such device")

        module = types.ModuleType("sounddevice")
        module.InputStream = broken_stream
        monkeypatch.setitem(sys.modules, "sounddevice", module)

        graph = LiveInputGraph(device="missing")
        with pytest.raises(AudioDeviceError, match="no such device"):
            graph.open()

        assert graph.state is GraphState.CLOSED

    def test_start_failure_closes_stream(self, fake_sounddevice, monkeypatch):
        def failing_start(self):
            raise RuntimeError("device busy")

        monkeypatch.setattr(FakeInputStream, "start", failing_start)
        graph = LiveInputGraph()

        with pytest.raises(AudioDeviceError, match="device busy"):
            graph.open()

        assert FakeInputStream.instances[-1].closed
        assert graph.stream is None
        assert graph.state is GraphState.CLOSED

    def test_open_after_start_failure_uses_fresh_stream(self, fake_sounddevice, monkeypatch):
        original_start = FakeInputStream.start

        def failing_start(self):
            raise RuntimeError("busy")

        monkeypatch.setattr(FakeInputStream, "start", failing_start)
        graph = LiveInputGraph()
        with pytest.raises(AudioDeviceError):
            graph.open()

        monkeypatch.setattr(FakeInputStream, "start", original_start)
        graph.open()

        assert graph.is_running
        assert len(FakeInputStream.instances) == 2

    def test_missing_library_raises(self, monkeypatch):
        # A None entry makes the import fail
        monkeypatch.setitem(sys.modules, "sounddevice", None)

        with pytest.raises(AudioDeviceError):
            LiveInputGraph().open()

    def test_silent_device_does_not_block_forever(self, fake_sounddevice, monkeypatch):
        monkeypatch.setattr(FakeInputStream, "start", lambda self: None)
        graph = LiveInputGraph(ready_timeout=0.01)
        graph.open()

        assert graph.is_running
