# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from common import __version__
from common.config import config
from common.errors import ConfigError
from common.logging_config import configure_logging
from common.metrics import configure_metrics, create_gate_instruments
from common.pattern import load_pattern_settings
from calibrator.session import CalibrationSession

logger = logging.getLogger(__name__)


def parse_calibrator_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the calibrator.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        description="Automatic camera calibration from still frames of a calibration pattern"
    )
    parser.add_argument(
        "--settings",
        type=Path,
        default=config.SETTINGS_PATH,
        help="Pattern settings YAML (xCount, yCount, squareSize, patternType). "
        "Defaults are used when the file does not exist.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=config.CALIBRATION_PATH,
        help="Where the calibration model is written after every new sample.",
    )
    parser.add_argument(
        "--camera-index",
        type=int,
        default=config.CAMERA_INDEX,
        help="Index of the camera to open (default: CAMERA_INDEX or 0)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run headless as an HTTP service instead of opening a window.",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Host to bind the server to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8002,
        help="Port to bind the server to (default: 8002)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the calibrator CLI."""
    args = parse_calibrator_arguments(argv)
    configure_logging(
        "calibrator", __version__, log_format=None if args.serve else "pretty"
    )
    instruments = create_gate_instruments(configure_metrics("calibrator", __version__))

    try:
        settings = load_pattern_settings(args.settings)
    except ConfigError as err:
        logger.error("Invalid pattern settings: %s", err)
        sys.exit(1)

    args.output.parent.mkdir(parents=True, exist_ok=True)
    session = CalibrationSession.create(
        settings, model_path=args.output, instruments=instruments
    )

    if args.serve:
        import uvicorn

        from calibrator.main import create_app
        from calibrator.manager import CalibrationManager
        from common.core.camera import LatestFrameRelay

        manager = CalibrationManager(session, LatestFrameRelay(args.camera_index))
        uvicorn.run(create_app(manager), host=args.host, port=args.port)
        return

    from calibrator.viewer import run_viewer

    try:
        run_viewer(session, args.camera_index, config.CAMERA_WIDTH, config.CAMERA_HEIGHT)
    except RuntimeError as err:
        logger.error("%s", err)
        sys.exit(1)


if __name__ == "__main__":
    main()
