"""Command-line entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_INTERVAL_MS, DEFAULT_TARGET_MS, CaptureConfig, parse_viewport
from .errors import ConfigError, LaunchError, ResolutionError, UsageError
from .manifest import write_manifest
from .orchestrator import AnimationCapturer
from .resolve import prepare_output_directory, resolve_animation_files, resolve_animation_pattern

DEFAULT_INPUT_DIR = Path("assets") / "example"
DEFAULT_OUTPUT_DIR = Path("tmp") / "output"

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="animation-capture",
        description="Capture deterministic snapshots of HTML animations along a virtual timeline",
    )
    parser.add_argument("names", nargs="*", metavar="NAME", help="HTML file name or * / ? pattern")
    parser.add_argument("--input-dir", default=str(DEFAULT_INPUT_DIR), help="Directory holding the animations")
    parser.add_argument("--output-dir", "-o", default=str(DEFAULT_OUTPUT_DIR), help="Directory for PNG frames")
    parser.add_argument("--target-ms", type=float, default=DEFAULT_TARGET_MS, help="Last timestamp to capture")
    parser.add_argument("--interval-ms", type=float, default=DEFAULT_INTERVAL_MS, help="Step between captures (0 = target only)")
    parser.add_argument("--virtual-step-ms", type=float, default=250, help="Largest virtual time budget per advance")
    parser.add_argument("--viewport", help="Viewport as WIDTHxHEIGHT (default 320x240)")
    parser.add_argument("--bootstrap-min-wait-ms", type=float, default=100)
    parser.add_argument("--bootstrap-max-wait-ms", type=float, default=2000)
    parser.add_argument("--bootstrap-min-ticks", type=int, default=2)
    parser.add_argument("--settle-ms", type=float, default=0, help="Real-time delay after each clock advance")
    parser.add_argument("--media-timeout-ms", type=float, default=2000, help="How long to wait for media frames")
    parser.add_argument("--advance-deadline-ms", type=float, default=30000, help="Deadline for each virtual time budget")
    parser.add_argument(
        "--no-clock-override",
        action="store_true",
        help="Leave performance.now() on real time during synchronization",
    )
    parser.add_argument("--no-flush", action="store_true", help="Do not force pending frame callbacks to run")
    parser.add_argument("--channel", help="Browser channel, e.g. chrome or msedge")
    parser.add_argument("--executable-path", help="Browser executable to launch instead of the bundled Chromium")
    parser.add_argument(
        "--fallback-channel",
        help="Channel to retry on when a page has media the main browser cannot play",
    )
    parser.add_argument("--manifest", help="Write a JSON manifest of the captured frames to this path")
    parser.add_argument("--no-embed-images", action="store_true", help="Leave base64 images out of the manifest")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def build_config(args: argparse.Namespace) -> CaptureConfig:
    return CaptureConfig(
        target_ms=args.target_ms,
        interval_ms=args.interval_ms,
        virtual_step_ms=args.virtual_step_ms,
        viewport=parse_viewport(args.viewport),
        bootstrap_min_wait_ms=args.bootstrap_min_wait_ms,
        bootstrap_max_wait_ms=args.bootstrap_max_wait_ms,
        bootstrap_min_ticks=args.bootstrap_min_ticks,
        settle_ms=args.settle_ms,
        media_ready_timeout_ms=args.media_timeout_ms,
        advance_deadline_ms=args.advance_deadline_ms,
        override_clock=not args.no_clock_override,
        flush_frame_callbacks=not args.no_flush,
        channel=args.channel,
        executable_path=args.executable_path,
        fallback_channel=args.fallback_channel,
    ).validate()


async def main_async(args: argparse.Namespace) -> int:
    try:
        pattern = resolve_animation_pattern(args.names)
        config = build_config(args)
    except (UsageError, ConfigError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_USAGE

    try:
        sources = resolve_animation_files(Path(args.input_dir), pattern)
        output_dir = prepare_output_directory(Path(args.output_dir))
    except ResolutionError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    capturer = AnimationCapturer(config, output_dir)
    try:
        report = await capturer.capture_all(sources)
    except LaunchError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        if exc.hint:
            print(exc.hint, file=sys.stderr)
        return EXIT_FAILURE

    if args.manifest:
        manifest_path = write_manifest(
            Path(args.manifest),
            report,
            output_dir,
            embed_images=not args.no_embed_images,
        )
        print(f"Manifest: {manifest_path}")

    if report.failures:
        print(
            f"\n❌ Encountered errors while capturing {len(report.failures)} animation(s): "
            + ", ".join(failure.source.name for failure in report.failures),
            file=sys.stderr,
        )
        for failure in report.failures:
            print(f"  {failure.source.name} [{failure.stage}]: {failure.reason}", file=sys.stderr)
        return EXIT_FAILURE

    print(f"\n✅ Captured {len(report.frames)} frame(s) from {len(report.results)} animation(s)")
    print(f"Output: {output_dir}")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
