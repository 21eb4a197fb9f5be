# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
import os
from pathlib import Path


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Application configuration."""

    # Camera settings
    CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
    CAMERA_WIDTH: int = int(os.getenv("CAMERA_WIDTH", "640"))
    CAMERA_HEIGHT: int = int(os.getenv("CAMERA_HEIGHT", "480"))

    # Auto-capture gate
    MOTION_THRESHOLD: float = float(
        os.getenv("MOTION_THRESHOLD", "2.5")
    )  # maximum amount of movement
    MIN_CAPTURE_INTERVAL: float = float(
        os.getenv("MIN_CAPTURE_INTERVAL", "1.0")
    )  # minimum seconds between snapshots
    CLEANING_FLOOR: int = int(
        os.getenv("CLEANING_FLOOR", "10")
    )  # start cleaning outliers after this many samples

    # Calibration engine
    CLEAN_MAX_REPROJECTION_ERROR: float = float(
        os.getenv("CLEAN_MAX_REPROJECTION_ERROR", "2.0")
    )  # pixels, views above this are dropped by clean()
    FILL_FRAME: bool = _env_flag("FILL_FRAME", "true")
    SUBPIXEL_WINDOW: int = int(os.getenv("SUBPIXEL_WINDOW", "11"))

    # Files
    SETTINGS_PATH: Path = Path(os.getenv("SETTINGS_PATH", "settings.yml"))
    CALIBRATION_PATH: Path = Path(os.getenv("CALIBRATION_PATH", "calibration.yml"))

    # CORS settings
    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")


config = Config()
