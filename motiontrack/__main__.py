"""
motiontrack Command Line Interface

Usage:
    motiontrack <command> [options]

Commands:
    detect      Detect Shi-Tomasi corners in an image
    track       Track points from one image to the next
    serve       Run the HTTP API
    status      Show vision backend status
    version     Show version information

Examples:
    motiontrack detect frame001.png -n 50 -d 15
    motiontrack track frame001.png frame002.png -p 120.5,80 -p 300,210
    motiontrack track frame001.png frame002.png -n 100
    motiontrack serve --port 8000
"""

import sys
import json
import argparse
from pathlib import Path

from motiontrack import __version__


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        '-c', '--config',
        default=None,
        help='JSON configuration file',
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging',
    )
    parser.add_argument(
        '--log-file',
        default=None,
        help='Also write log messages to this file',
    )


def _parse_point(text: str) -> dict:
    try:
        x, y = (float(v) for v in text.split(','))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected X,Y but got {text!r}") from None
    return {"x": x, "y": y}


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='motiontrack',
        description='Sparse feature detection and optical flow tracking',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        '-V', '--version',
        action='version',
        version=f'motiontrack {__version__}',
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Detect command
    detect_parser = subparsers.add_parser(
        'detect',
        help='Detect corners in an image',
    )
    detect_parser.add_argument('image', help='Input image file')
    detect_parser.add_argument(
        '-n', '--max-corners',
        type=int,
        default=None,
        help='Maximum number of corners (default: from config, 100)',
    )
    detect_parser.add_argument(
        '-q', '--quality-level',
        type=float,
        default=None,
        help='Relative quality threshold in (0, 1] (default: 0.01)',
    )
    detect_parser.add_argument(
        '-d', '--min-distance',
        type=float,
        default=None,
        help='Minimum distance between corners (default: 10)',
    )
    _add_common(detect_parser)

    # Track command
    track_parser = subparsers.add_parser(
        'track',
        help='Track points between two images',
    )
    track_parser.add_argument('prev', help='First image file')
    track_parser.add_argument('curr', help='Second image file')
    track_parser.add_argument(
        '-p', '--point',
        action='append',
        dest='points',
        type=_parse_point,
        metavar='X,Y',
        help='Point to track (can be used multiple times; default: detect corners)',
    )
    track_parser.add_argument(
        '-n', '--max-corners',
        type=int,
        default=None,
        help='Corners to detect when no points are given',
    )
    _add_common(track_parser)

    # Serve command
    serve_parser = subparsers.add_parser(
        'serve',
        help='Run the HTTP API',
    )
    serve_parser.add_argument('--host', default=None, help='Host to bind to (default: 127.0.0.1)')
    serve_parser.add_argument('-p', '--port', type=int, default=None, help='Port (default: 8000)')
    _add_common(serve_parser)

    # Status command
    status_parser = subparsers.add_parser(
        'status',
        help='Initialize the vision backend and show its status',
    )
    _add_common(status_parser)

    subparsers.add_parser('version', help='Show version information')

    # Parse arguments
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == 'version':
        print(f"motiontrack {__version__}")
        return 0

    config = _load_config(args)

    # Dispatch to appropriate command
    if args.command == 'detect':
        return run_detect(args, config)
    elif args.command == 'track':
        return run_track(args, config)
    elif args.command == 'serve':
        return run_serve(args, config)
    elif args.command == 'status':
        return run_status(args, config)
    else:
        parser.print_help()
        return 1


def _load_config(args):
    from motiontrack.core.config import Config, apply_env_overrides
    from motiontrack.utils.log import setup_logging

    config = Config.load(args.config) if args.config else Config()
    config = apply_env_overrides(config)
    setup_logging("DEBUG" if args.verbose else config.server.log_level, args.log_file)
    return config


def _make_service(config):
    from motiontrack.service.channel import FeatureService

    # Shares the process-wide vision_backend with `status` and `serve`
    service = FeatureService(config=config)
    if not service.initialize():
        print(f"Error: vision backend failed: {service.backend.last_error}", file=sys.stderr)
        return None
    return service


def _read_image(path: str) -> tuple[bytes, int, int]:
    from motiontrack.core.decode import decode_pixels

    data = Path(path).read_bytes()
    height, width = decode_pixels(data).shape[:2]
    return data, width, height


def _call(service, method: str, arguments: dict) -> int:
    from motiontrack.core.errors import MotionTrackError

    try:
        result = service.handle_call(method, arguments)
    except MotionTrackError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


def run_detect(args, config):
    """Run corner detection command."""
    from motiontrack.core.errors import MotionTrackError

    service = _make_service(config)
    if service is None:
        return 1

    try:
        data, width, height = _read_image(args.image)
    except (OSError, MotionTrackError) as e:
        print(f"Error: cannot read {args.image}: {e}", file=sys.stderr)
        return 1

    detection = config.detection
    return _call(service, "detectFeatures", {
        "imageBytes": data,
        "width": width,
        "height": height,
        "maxCorners": args.max_corners or detection.max_corners,
        "qualityLevel": args.quality_level or detection.quality_level,
        "minDistance": detection.min_distance if args.min_distance is None else args.min_distance,
    })


def run_track(args, config):
    """Run point tracking command."""
    from motiontrack.core.errors import MotionTrackError

    service = _make_service(config)
    if service is None:
        return 1

    try:
        prev_data, width, height = _read_image(args.prev)
        curr_data, _, _ = _read_image(args.curr)
    except (OSError, MotionTrackError) as e:
        print(f"Error: cannot read input images: {e}", file=sys.stderr)
        return 1

    points = args.points
    if not points:
        try:
            points = service.handle_call("detectFeatures", {
                "imageBytes": prev_data,
                "width": width,
                "height": height,
                "maxCorners": args.max_corners or config.detection.max_corners,
                "qualityLevel": config.detection.quality_level,
                "minDistance": config.detection.min_distance,
            })
        except MotionTrackError as e:
            print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
            return 1

    return _call(service, "trackOpticalFlow", {
        "prevFrame": prev_data,
        "currFrame": curr_data,
        "prevPoints": points,
        "width": width,
        "height": height,
    })


def run_serve(args, config):
    """Run the HTTP API."""
    from dataclasses import replace
    from motiontrack.service.channel import FeatureService
    from motiontrack.service.web import serve

    settings = config.server
    if args.host:
        settings = replace(settings, host=args.host)
    if args.port:
        settings = replace(settings, port=args.port)

    serve(FeatureService(config=config), settings)
    return 0


def run_status(args, config):
    """Initialize the backend and print its status."""
    from motiontrack.core.backend import vision_backend

    vision_backend.initialize()
    print(json.dumps(vision_backend.status(), indent=2))
    return 0 if vision_backend.is_ready else 1


if __name__ == '__main__':
    sys.exit(main())
