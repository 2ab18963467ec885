"""
GazeHeat - gaze and mouse heatmaps for web pages.

Command-line entry point.

Usage:
    gazeheat track --layout page.json [--duration S] [--locator NAME] [--origin X,Y]
    gazeheat render SESSION.json [--background IMG]
    gazeheat report SESSION.json
    gazeheat analyze-video FILE
    gazeheat remote-analyze FILE
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import cv2

from gazeheat.analytics.attention import AttentionAnalyzer, format_report
from gazeheat.analytics.heatmap import HeatmapRenderer, canvas_size_for, capture_label
from gazeheat.analysis.batch import BatchVideoAnalyzer
from gazeheat.core.config import AppConfig, get_default_config
from gazeheat.core.controller import Controller
from gazeheat.core.errors import GazeHeatError
from gazeheat.recording.elements import PageLayout
from gazeheat.recording.mouse_listener import MouseListener
from gazeheat.remote.face_analysis import HttpFaceAnalysisService, RemoteVideoAnalyzer
from gazeheat.storage.session_store import SessionStore
from gazeheat.utils.logger import get_logger, setup_logger
from gazeheat.utils.timing import now_ms
from gazeheat.vision.landmarks import create_landmark_extractor

logger = get_logger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gazeheat",
        description="Record gaze and mouse samples over a page and render attention heatmaps.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Directory for exported sessions, heatmaps and analysis results.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: GAZEHEAT_LOG_LEVEL or WARNING).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    track = sub.add_parser("track", help="Record a live session from the camera and mouse.")
    track.add_argument("--layout", type=Path, required=True, help="Page layout JSON.")
    track.add_argument("--duration", type=float, default=None, help="Seconds to record (default: until Ctrl+C).")
    track.add_argument(
        "--locator",
        choices=["offset", "brightness", "iris"],
        default=None,
        help="Pupil locating strategy.",
    )
    track.add_argument(
        "--extractor",
        choices=["mediapipe", "heuristic"],
        default="mediapipe",
        help="Eye landmark extractor (default: mediapipe).",
    )
    track.add_argument("--camera", type=int, default=None, help="Camera index.")
    track.add_argument("--no-mouse", action="store_true", help="Record gaze samples only.")
    track.add_argument(
        "--origin",
        type=parse_origin,
        default=None,
        help="Screen position X,Y of the page viewport (default: layout origin).",
    )
    track.add_argument(
        "--live-heatmap",
        action="store_true",
        help="Keep a fading gaze heatmap during tracking and save it at the end.",
    )
    track.add_argument("--background", type=Path, default=None, help="Page screenshot for the capture.")

    render = sub.add_parser("render", help="Render a saved session as a heatmap PNG.")
    render.add_argument("session", type=Path)
    render.add_argument("--background", type=Path, default=None, help="Page screenshot to draw on.")

    report = sub.add_parser("report", help="Print the attention report of a saved session.")
    report.add_argument("session", type=Path)

    analyze = sub.add_parser("analyze-video", help="Estimate gaze frame by frame in a video file.")
    analyze.add_argument("file", type=Path)

    remote = sub.add_parser("remote-analyze", help="Send video frames to the face analysis service.")
    remote.add_argument("file", type=Path)

    return parser


def parse_origin(text: str) -> Tuple[int, int]:
    """Parse "X,Y" into a screen position."""
    try:
        x, y = (int(part) for part in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y in pixels, got {text!r}")
    return (x, y)


def build_mouse_listener(args, layout: PageLayout) -> Optional[MouseListener]:
    """Mouse source translating screen positions into the page viewport."""
    if args.no_mouse:
        return None
    origin = args.origin if args.origin is not None else layout.origin
    return MouseListener(origin=origin)


def load_background(path: Optional[Path]):
    """Read an image file as RGB, or None."""
    if path is None:
        return None
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise GazeHeatError(f"Cannot read background image: {path}")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def cmd_track(args, config: AppConfig) -> int:
    if args.locator:
        config.gaze.pupil_locator = args.locator
    if args.camera is not None:
        config.camera.camera_index = args.camera

    try:
        layout = PageLayout.load(args.layout)
    except (OSError, ValueError) as e:
        raise GazeHeatError(f"Cannot load layout: {e}") from e

    controller = Controller(
        config,
        layout=layout,
        extractor=create_landmark_extractor(args.extractor, config.gaze.min_detection_score),
        mouse_listener=build_mouse_listener(args, layout),
        live_heatmap=args.live_heatmap,
    )

    controller.start_recording()
    try:
        controller.start_tracking()
        print("Recording... press Ctrl+C to stop.")
        controller.run(duration_s=args.duration)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        controller.shutdown()

    session_path = controller.save_session()
    png_path = controller.capture(load_background(args.background))
    live_path = controller.save_live_heatmap() if args.live_heatmap else None

    print(format_report(controller.report()))
    print(f"\nSession: {session_path}")
    print(f"Heatmap: {png_path}")
    if live_path is not None:
        print(f"Live heatmap: {live_path}")
    return 0


def cmd_render(args, config: AppConfig) -> int:
    store = SessionStore(config.storage)
    session = store.load_session(args.session)
    background = load_background(args.background)

    minimum = (session.viewport.width, session.viewport.height)
    if background is not None:
        minimum = (max(minimum[0], background.shape[1]), max(minimum[1], background.shape[0]))

    stamp = now_ms()
    image = HeatmapRenderer(config.heatmap).compose_capture(
        session.samples,
        background,
        canvas_size_for(session.samples, minimum),
        capture_label(stamp),
    )
    print(f"Heatmap: {store.save_png(image, stamp)}")
    return 0


def cmd_report(args, config: AppConfig) -> int:
    session = SessionStore(config.storage).load_session(args.session)
    analyzer = AttentionAnalyzer(config.analysis)
    print(format_report(analyzer.analyze(session.samples), analyzer.find_hesitations(session.samples)))
    return 0


def cmd_analyze_video(args, config: AppConfig) -> int:
    analyzer = BatchVideoAnalyzer(config)

    def progress(done: int, total: int):
        if done == total or done % 30 == 0:
            print(f"\rAnalyzing frames: {done}/{total}", end="", flush=True)

    try:
        records = analyzer.analyze(args.file, progress=progress)
    except KeyboardInterrupt:
        analyzer.stop()
        raise
    print()

    path = SessionStore(config.storage).save_detections(records)
    print(f"{len(records)} gaze records written to {path}")
    return 0


def cmd_remote_analyze(args, config: AppConfig) -> int:
    service = HttpFaceAnalysisService(config.remote)
    try:
        result = RemoteVideoAnalyzer(service, config.analysis).analyze(args.file)
    finally:
        service.close()

    path = SessionStore(config.storage).save_remote_results(result.results)
    print(f"{len(result.results)} face records written to {path}")
    for failure in result.failures:
        print(f"  frame at {failure.timestamp} ms failed: {failure.error}", file=sys.stderr)
    return 0 if result.ok else 1


COMMANDS = {
    "track": cmd_track,
    "render": cmd_render,
    "report": cmd_report,
    "analyze-video": cmd_analyze_video,
    "remote-analyze": cmd_remote_analyze,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_arg_parser().parse_args(argv)

    # Load configuration
    config = get_default_config()
    if args.log_level:
        config.log_level = args.log_level
    if args.output_dir is not None:
        config.storage.output_dir = args.output_dir

    # Setup logging
    setup_logger(
        level=config.log_level,
        log_file=config.storage.log_path,
        enable_file_logging=config.storage.enable_file_logging,
    )

    logger.info(f"GazeHeat {config.version}: {args.command}")

    try:
        return COMMANDS[args.command](args, config)
    except GazeHeatError as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
