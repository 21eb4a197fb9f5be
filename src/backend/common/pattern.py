# SPDX-FileCopyrightText: 2025 robot-visual-perception
#
# SPDX-License-Identifier: MIT
"""Calibration pattern geometry and the optional ``settings.yml`` loader."""

import logging
import math
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Optional

import cv2

from common.errors import ConfigError

logger = logging.getLogger(__name__)


class PatternType(IntEnum):
    CHESSBOARD = 0
    CIRCLES_GRID = 1
    ASYMMETRIC_CIRCLES_GRID = 2

    @classmethod
    def from_code(cls, code: object) -> "PatternType":
        """Map the numeric ``patternType`` setting onto a pattern.

        Raises:
            ConfigError: For anything other than 0, 1 or 2.
        """
        if isinstance(code, bool) or not isinstance(code, (int, float)):
            raise ConfigError(f"patternType must be an integer, got {code!r}")
        if not math.isfinite(code) or float(code) != int(code):
            raise ConfigError(f"patternType must be an integer, got {code!r}")
        try:
            return cls(int(code))
        except ValueError:
            raise ConfigError(
                f"unknown patternType {int(code)}; expected 0 (checkerboard), "
                "1 (circle grid) or 2 (asymmetric circle grid)"
            ) from None


@dataclass(frozen=True)
class PatternSettings:
    """Board geometry. ``x_count``/``y_count`` count inner corners or circles."""

    x_count: int = 10
    y_count: int = 7
    square_size: float = 2.5
    pattern_type: PatternType = PatternType.CHESSBOARD

    def __post_init__(self) -> None:
        for name in ("x_count", "y_count"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 2:
                raise ConfigError(f"{name} must be an integer >= 2, got {value!r}")
        if not (math.isfinite(self.square_size) and self.square_size > 0):
            raise ConfigError(
                f"square_size must be a finite positive number, got {self.square_size!r}"
            )

    @property
    def pattern_size(self) -> tuple[int, int]:
        return self.x_count, self.y_count


def _read_node(storage: cv2.FileStorage, key: str) -> Optional[float]:
    node = storage.getNode(key)
    if node.empty() or node.isNone():
        return None
    if not node.isReal() and not node.isInt():
        raise ConfigError(f"{key} must be numeric")
    value = node.real()
    if not math.isfinite(value):
        raise ConfigError(f"{key} must be finite, got {value}")
    return value


def load_pattern_settings(path: Path) -> PatternSettings:
    """Load pattern settings from an OpenCV FileStorage YAML file.

    A missing file is not an error: the defaults are returned. Keys that are
    absent from an existing file keep their default values.

    Raises:
        ConfigError: If a value is malformed, non-positive or the pattern type
            is unknown.
    """
    defaults = PatternSettings()
    if not Path(path).is_file():
        logger.info("No pattern settings found, using defaults", extra={"path": str(path)})
        return defaults

    try:
        storage = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    except (cv2.error, SystemError) as err:
        raise ConfigError(f"cannot parse {path}: {err}") from err
    if not storage.isOpened():
        raise ConfigError(f"cannot open {path}")

    try:
        x_count = _read_node(storage, "xCount")
        y_count = _read_node(storage, "yCount")
        square_size = _read_node(storage, "squareSize")
        pattern_code = _read_node(storage, "patternType")
    finally:
        storage.release()

    def as_count(name: str, value: Optional[float], default: int) -> int:
        if value is None:
            return default
        if value != int(value):
            raise ConfigError(f"{name} must be an integer, got {value}")
        return int(value)

    settings = PatternSettings(
        x_count=as_count("xCount", x_count, defaults.x_count),
        y_count=as_count("yCount", y_count, defaults.y_count),
        square_size=defaults.square_size if square_size is None else float(square_size),
        pattern_type=(
            defaults.pattern_type
            if pattern_code is None
            else PatternType.from_code(pattern_code)
        ),
    )
    logger.info(
        "Loaded pattern settings",
        extra={
            "path": str(path),
            "pattern_size": settings.pattern_size,
            "square_size": settings.square_size,
            "pattern_type": settings.pattern_type.name,
        },
    )
    return settings
