"""CLI entry point for mirrorless-camera.

Provides the ``mirrorless-camera`` console script with subcommands:

- ``devices`` - List the cameras the transport enumerates
- ``capture`` - Take one exposure and report the resulting frame
- ``serve`` - Run the Alpaca-style HTTP device API (default if no subcommand)

Usage::

    # List simulated bodies
    mirrorless-camera devices

    # Two-second light frame on the test sensor, 500x500 region
    mirrorless-camera --device twin-test capture 2.0 --subframe 100 100 500 500

    # Legacy monochrome client, fast simulated time
    mirrorless-camera --personality legacy_monochrome --time-scale 0.01 serve

Module Structure:
    - ``main()`` - CLI entry point, dispatches subcommands
    - ``build_parser()`` - Argument parser with common driver options
    - ``run_devices()`` / ``run_capture()`` / ``run_serve()`` - Subcommands
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from functools import lru_cache

from mirrorless_camera.core.errors import CameraError
from mirrorless_camera.core.types import OutputMode, Personality, Rect
from mirrorless_camera.drivers.config import (
    DriverConfig,
    configure,
    get_factory,
    get_session,
)
from mirrorless_camera.observability import ExposureStats, configure_logging

# Constants
PROG_NAME = "mirrorless-camera"
POLL_INTERVAL_S = 0.05
# Extra wall-clock time allowed beyond the simulated exposure
CAPTURE_TIMEOUT_MARGIN_S = 30.0


@lru_cache(maxsize=1)
def _get_logger() -> logging.Logger:
    """Get the CLI output logger with cached initialization.

    Plain message-only output on stdout, separate from the structured
    driver logs on stderr.
    """
    cli_logger = logging.getLogger(__name__)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    cli_logger.addHandler(handler)
    cli_logger.setLevel(logging.INFO)
    cli_logger.propagate = False
    return cli_logger


def _log(message: str, *, emoji: str = "") -> None:
    """Log message with optional emoji prefix for CLI feedback.

    Example:
        >>> _log("Exposure complete", emoji="✅")
    """
    prefix = f"{emoji} " if emoji else ""
    _get_logger().info(f"{prefix}{message}")


def _config_from_args(args: argparse.Namespace) -> DriverConfig:
    return DriverConfig(
        device_id=args.device,
        personality=Personality(args.personality),
        output_format=OutputMode(args.output_format),
        use_liveview=not args.no_liveview,
        twin_time_scale=args.time_scale,
        twin_seed=args.seed,
    )


def run_devices(args: argparse.Namespace) -> int:
    """Print the devices the configured transport enumerates."""
    transport = get_factory().create_transport()
    entries = list(transport.enumerate_devices())
    if args.json:
        _log(json.dumps([e._asdict() for e in entries], indent=2))
        return 0
    if not entries:
        _log("No cameras found", emoji="⚠️")
        return 1
    for entry in entries:
        _log(f"{entry.device_id:<16} {entry.display_name}", emoji="📷")
    return 0


def run_capture(args: argparse.Namespace) -> int:
    """Connect, take one exposure and report the frame.

    Polls is_image_ready() the way an imaging client does, then reads the
    frame through the requested sub-frame.

    Returns:
        0 on success, 1 on a camera error or timeout.
    """
    session = get_session(stats=ExposureStats())
    subframe = Rect(*args.subframe) if args.subframe else None
    try:
        descriptor = session.connect(args.device)
        _log(
            f"Connected to {descriptor.name} "
            f"({descriptor.width}x{descriptor.height})",
            emoji="🔌",
        )
        if args.fast_readout:
            session.set_fast_readout(True)

        session.start_exposure(args.duration, not args.dark, subframe)
        deadline = (
            time.monotonic()
            + args.duration * get_factory().config.twin_time_scale
            + CAPTURE_TIMEOUT_MARGIN_S
        )
        while not session.is_image_ready():
            if time.monotonic() > deadline:
                session.abort_exposure()
                _log("Timed out waiting for the image", emoji="❌")
                return 1
            time.sleep(POLL_INTERVAL_S)

        frame = session.get_last_frame()
        _log(
            f"Frame {frame.width}x{frame.height}x{frame.channel_count} "
            f"{frame.pixels.dtype} sensor={session.get_sensor_type().value} "
            f"min={int(frame.pixels.min())} max={int(frame.pixels.max())}",
            emoji="✅",
        )
        _log(f"Started {session.last_exposure_start_time()} UTC")
    except CameraError as e:
        _log(f"{e.kind.value}: {e}", emoji="❌")
        return 1
    finally:
        session.disconnect()

    if session.stats is not None:
        _log(json.dumps(session.stats.get_summary().to_dict(), indent=2))
    return 0


def run_serve(args: argparse.Namespace) -> int:
    """Run the HTTP device API until interrupted."""
    from mirrorless_camera.web.app import main as web_main

    _log(f"Serving on http://{args.host}:{args.port}", emoji="🚀")
    web_main(host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Driver options precede the subcommand and apply to all of them.
    """
    from mirrorless_camera.web.app import DEFAULT_HOST, DEFAULT_PORT

    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="Mirrorless camera driver for astronomy capture software",
    )
    parser.add_argument(
        "--device",
        default="",
        help="Device id or name to open (default: first enumerated)",
    )
    parser.add_argument(
        "--personality",
        choices=[p.value for p in Personality],
        default=Personality.DEFAULT.value,
        help="Client integration profile",
    )
    parser.add_argument(
        "--output-format",
        choices=[m.value for m in OutputMode],
        default=OutputMode.DEBAYERED_COLOR.value,
        help="Capture representation for the default personality",
    )
    parser.add_argument(
        "--no-liveview",
        action="store_true",
        help="Never use the liveview preview for fast readout",
    )
    parser.add_argument(
        "--time-scale",
        type=float,
        default=1.0,
        help="Wall-clock seconds per simulated exposure second",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for simulated images",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Driver log level",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit driver logs as JSON lines",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    devices_parser = subparsers.add_parser("devices", help="List cameras")
    devices_parser.add_argument("--json", action="store_true", help="JSON output")

    capture_parser = subparsers.add_parser("capture", help="Take one exposure")
    capture_parser.add_argument(
        "duration", type=float, help="Exposure duration in seconds"
    )
    capture_parser.add_argument(
        "--dark", action="store_true", help="Dark frame (shutter closed)"
    )
    capture_parser.add_argument(
        "--subframe",
        type=int,
        nargs=4,
        metavar=("X", "Y", "W", "H"),
        help="Sub-frame to expose and read back",
    )
    capture_parser.add_argument(
        "--fast-readout",
        action="store_true",
        help="Use the liveview preview when available",
    )

    serve_parser = subparsers.add_parser(
        "serve", help="Run the HTTP device API (default)"
    )
    serve_parser.add_argument("--host", default=DEFAULT_HOST, help="Bind address")
    serve_parser.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help="Listen port"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point for mirrorless-camera.

    Args:
        argv: Arguments without the program name. None reads sys.argv.

    Returns:
        Exit code 0 for success, non-zero for errors.

    Raises:
        SystemExit: On --help or argument parsing errors.

    Example:
        >>> main(["--device", "twin-test", "--time-scale", "0", "capture", "1"])
        0
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        # Bare invocation runs the server with its defaults
        given = sys.argv[1:] if argv is None else argv
        args = parser.parse_args([*given, "serve"])

    configure_logging(level=args.log_level, json_format=args.json_logs, force=True)
    configure(_config_from_args(args))

    if args.command == "devices":
        return run_devices(args)
    if args.command == "capture":
        return run_capture(args)
    return run_serve(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
