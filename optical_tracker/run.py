import argparse
import signal
import sys

from .config import ConfigurationError, TrackerConfig, load_config
from .logging_utils import setup_logger
from .worker import TrackerWorker


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Track marker tools in a recorded RGB(-D) session")
    ap.add_argument("--config", required=True, help="Path to JSON/YAML config")

    ap.add_argument("--device-id")
    ap.add_argument("--calib")
    ap.add_argument("--dict")
    ap.add_argument("--input-type", choices=["RGB_ONLY", "RGB_AND_DEPTH"])
    ap.add_argument("--source", help="Recorded session directory (images/, clouds/)")
    ap.add_argument("--out")
    ap.add_argument("--fps", type=int)
    ap.add_argument("--duration", type=float)
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--save-annotated", action="store_true")
    ap.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    return ap


def _apply_args(cfg: TrackerConfig, args: argparse.Namespace) -> TrackerConfig:
    cfg.apply_overrides(
        device_id=args.device_id,
        camera_calibration_file=args.calib,
        marker_dictionary=args.dict,
        input_type=args.input_type,
        source_dir=args.source,
        session_root=args.out,
        fps=args.fps,
        duration_sec=args.duration,
        max_frames=args.max_frames,
        save_annotated=True if args.save_annotated else None,
        log_level=args.log_level,
    )
    return cfg


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    try:
        cfg = _apply_args(load_config(args.config), args)
    except (ConfigurationError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    logger = setup_logger(cfg.device_id, cfg.log_level)

    worker = TrackerWorker(cfg, logger=logger)

    def _handle_signal(_sig, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    try:
        summary = worker.run()
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
