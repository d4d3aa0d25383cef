"""
Command-line interface for the audio-reactive control engine.

Usage:
    sonosphere export <audio_file> [options]
    sonosphere live [options]
    sonosphere preset {show,save,reset} [options]
    python -m sonosphere <command> [options]
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from sonosphere.config import VisualizerSettings
from sonosphere.core.polisher import CHANNELS
from sonosphere.core.sampler import SignalSampler
from sonosphere.driver import FrameDriver
from sonosphere.io.presets import PresetStore
from sonosphere.pipeline import OfflinePipeline
from sonosphere.sources import AudioDeviceError, LiveInputGraph


def _meter(value: float, width: int = 10) -> str:
    filled = int(round(min(max(value, 0.0), 1.0) * width))
    return "#" * filled + "." * (width - filled)


def _progress_bar(current: int, total: int):
    """Report export progress; redraws in place on a terminal."""
    total = max(total, 1)
    status = f"{current / total:6.1%}  tick {current}/{total}"
    if sys.stdout.isatty():
        end = "\n" if current >= total else ""
        sys.stdout.write(f"\r[{_meter(current / total, 30)}] {status}{end}")
        sys.stdout.flush()
    elif current >= total or current % max(1, total // 20) == 0:
        print(status, flush=True)


def _device_label(device) -> str:
    return "default input" if device is None else str(device)


def _load_settings(args) -> VisualizerSettings:
    """Resolve settings from the stored preset and command-line overrides."""
    # Without --preset the default preset location is used
    settings = PresetStore(args.preset).load() or VisualizerSettings()
    if args.particles is not None:
        settings = VisualizerSettings.from_mapping({"particle_count": args.particles}, base=settings)
    return settings


def cmd_export(args):
    if not args.audio.exists():
        print(f"Error: Audio file not found: {args.audio}", file=sys.stderr)
        sys.exit(1)

    suffix = ".npz" if args.format == "numpy" else ".json"
    output = args.output
    if output is None:
        output = args.audio.with_name(f"{args.audio.stem}_controls{suffix}")

    settings = _load_settings(args)

    print(f"Processing: {args.audio}")
    print(f"  FPS: {args.fps}, particles: {settings.particle_count}")
    t0 = time.time()

    pipeline = OfflinePipeline(
        fps=args.fps,
        settings=settings,
        sample_rate=args.sample_rate,
        seed=args.seed,
        include_particles=args.include_particles,
    )
    result = pipeline.process(
        args.audio,
        output_path=output,
        format=args.format,
        max_duration=args.max_duration,
        progress_callback=None if args.quiet else _progress_bar,
    )

    print(f"\nDone! {result['n_frames']} frames, {result['duration']:.1f}s of audio")
    print(f"  Took {time.time() - t0:.1f}s")
    print(f"  Output: {result['output_path']}")


def cmd_live(args):
    settings = _load_settings(args)
    graph = LiveInputGraph(device=args.device, sample_rate=args.sample_rate)
    driver = FrameDriver(SignalSampler(graph), settings=settings, seed=args.seed)

    try:
        graph.open()
    except AudioDeviceError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Listening on {_device_label(args.device)} (Ctrl+C to stop)")
    interval = 1.0 / args.fps
    started = last = time.monotonic()
    try:
        while args.duration is None or last - started < args.duration:
            time.sleep(interval)
            now = time.monotonic()
            frame = driver.tick(now - last)
            last = now

            values = frame.bands.as_dict()
            line = "  ".join(f"{name[:4]:>4} {_meter(values[name])}" for name in CHANNELS)
            sys.stdout.write(f"\r{line}  boost {frame.boost:4.2f}")
            sys.stdout.flush()
    except KeyboardInterrupt:
        pass
    finally:
        sys.stdout.write("\n")
        graph.close()

    if graph.dropped_blocks:
        print(f"  Dropped {graph.dropped_blocks} input blocks")


def cmd_preset(args):
    store = PresetStore(args.preset)

    if args.action == "reset":
        store.clear()
        print(f"Preset cleared: {store.path}")
        return

    settings = store.load() or VisualizerSettings()
    if args.action == "save":
        overrides = {}
        for item in args.set or []:
            key, _, value = item.partition("=")
            try:
                overrides[key] = float(value)
            except ValueError:
                print(f"Error: Invalid setting {item!r}, expected key=number", file=sys.stderr)
                sys.exit(1)
        try:
            settings = VisualizerSettings.from_mapping(overrides, base=settings)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        path = store.save(settings)
        print(f"Preset saved: {path}")

    print(json.dumps(settings.to_mapping(), indent=2))


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="sonosphere",
        description="Audio-reactive control engine for particle visualizers",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Shared settings options
    settings_parser = argparse.ArgumentParser(add_help=False)
    settings_parser.add_argument(
        "--preset", type=Path, default=None,
        help="Preset file to load settings from",
    )
    settings_parser.add_argument(
        "--particles", type=int, default=None,
        help="Particle count (1000-50000, overrides preset)",
    )
    settings_parser.add_argument("--seed", type=int, default=None, help="Random seed")

    export = subparsers.add_parser(
        "export", parents=[settings_parser],
        help="Render control frames for an audio file",
    )
    export.add_argument("audio", type=Path, help="Input audio file (wav, mp3, flac)")
    export.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Output path (default: <audio>_controls.json)",
    )
    export.add_argument("-f", "--fps", type=int, default=60, help="Ticks per second (default: 60)")
    export.add_argument(
        "-s", "--sample-rate", type=int, default=None,
        help="Decode sample rate (default: file's native rate)",
    )
    export.add_argument(
        "--format", choices=["json", "numpy"], default="json",
        help="Output format (default: json)",
    )
    export.add_argument(
        "--include-particles", action="store_true",
        help="Embed per-particle attributes in every frame",
    )
    export.add_argument("--max-duration", type=float, default=None, help="Limit output to N seconds")
    export.add_argument("-q", "--quiet", action="store_true", help="Suppress progress output")
    export.set_defaults(func=cmd_export)

    live = subparsers.add_parser(
        "live", parents=[settings_parser],
        help="Show live band meters from an input device",
    )
    live.add_argument("-d", "--device", default=None, help="Input device name or index")
    live.add_argument("-s", "--sample-rate", type=int, default=44100, help="Capture rate (default: 44100)")
    live.add_argument("-f", "--fps", type=int, default=30, help="Meter refresh rate (default: 30)")
    live.add_argument("--duration", type=float, default=None, help="Stop after N seconds")
    live.set_defaults(func=cmd_live)

    preset = subparsers.add_parser("preset", help="Show, save or reset the stored preset")
    preset.add_argument("action", choices=["show", "save", "reset"])
    preset.add_argument(
        "--preset", type=Path, default=None,
        help="Preset file (default: ~/.config/sonosphere/visualizer_preset_v1.json)",
    )
    preset.add_argument(
        "--set", action="append", metavar="KEY=VALUE",
        help="Setting to store with 'save' (repeatable, camelCase keys accepted)",
    )
    preset.set_defaults(func=cmd_preset)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if isinstance(getattr(args, "device", None), str) and args.device.isdigit():
        args.device = int(args.device)

    args.func(args)


if __name__ == "__main__":
    main()
